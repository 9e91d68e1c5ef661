"""应答方抽象接口。

编排器不直接依赖具体厂商的 HTTP 细节，而是依赖以下协议：

- PrimaryResponder: 带会话历史的主应答方（如 BedrockClient）。
- SecondaryResponder: 带搜索增强、可缓存的备用应答方（如 GeminiClient）。

两者失败时都抛出 ResponderUnavailable（或其子类），由编排器决定回退策略。
"""

from typing import Any, Dict, Optional, Protocol, Sequence

from yojana_core.domain.models import ChatTurn, ResponderReply


class PrimaryResponder(Protocol):
    """主应答方协议。

    - name: Provider 名称，用于日志。
    - respond: history 按从新到旧传入，由实现方自行调整为时间顺序。
    """

    name: str

    def respond(
        self,
        message: str,
        history: Sequence[ChatTurn],
        user_context: Optional[Dict[str, Any]] = None,
    ) -> ResponderReply:
        ...


class SecondaryResponder(Protocol):
    """备用应答方协议。

    取不到文本时不视为错误，只在底层调用失败时抛出 ResponderUnavailable。
    """

    name: str

    def respond(self, query: str, user_context: Optional[Dict[str, Any]] = None) -> ResponderReply:
        ...
