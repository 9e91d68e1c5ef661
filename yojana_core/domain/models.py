"""统一的对话与结果数据模型。

本模块定义了编排器、应答方客户端与会话存储之间共享的标准数据结构：

- ChatTurn: 一条持久化的对话轮次（user 或 assistant）。
- Citation: 检索增强回答附带的来源 {title, uri}。
- ResponderReply: 主/备应答方返回的统一结果。
- ChatOutcome: 一次 handle_message 调用的最终产物。

所有 Provider 适配器（如 BedrockClient）都只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple


Role = Literal["user", "assistant"]

# 助手轮次的来源标注，持久化后永不为空
AI_MODEL_PRIMARY = "primary"
AI_MODEL_SECONDARY = "secondary"
AI_MODEL_ERROR = "Error"

APOLOGY_TEXT = "Sorry, I was unable to process your request at this moment. Please try again later."


_clock_lock = threading.Lock()
_last_ms = 0


def now_ms() -> int:
    """返回进程内严格递增的毫秒时间戳。

    同一毫秒内的多次调用会依次 +1，保证同一进程写入的轮次时间戳不重复。
    """

    global _last_ms
    with _clock_lock:
        current = int(time.time() * 1000)
        if current <= _last_ms:
            current = _last_ms + 1
        _last_ms = current
        return current


def make_sort_key(timestamp: int) -> str:
    """生成 "{timestamp}-{random}" 形式的排序键，用于区分同毫秒写入。"""

    return f"{timestamp}-{random.random():.12f}"


def new_conversation_id(user_id: str, timestamp: Optional[int] = None) -> str:
    return f"conv-{user_id}-{timestamp if timestamp is not None else now_ms()}"


@dataclass
class Citation:
    """一条引用来源。"""

    title: str
    uri: str

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "uri": self.uri}


@dataclass
class ChatTurn:
    """一条对话轮次。

    - conversation_id: 会话 ID，把多条轮次归为同一会话。
    - user_id: 发送者所属用户。
    - role: user / assistant。
    - text: 文本内容；全部失败时 assistant 轮次为致歉文案。
    - timestamp: 创建时间（毫秒），排序主键。
    - sort_key: "{timestamp}-{random}"，同毫秒写入的区分键。
    - ai_model: 仅 assistant 轮次，取值 primary / secondary / Error。
    - model_name: 实际回答的模型展示名，供前端透明展示。
    - sources: 仅 assistant 轮次，检索来源列表。
    """

    conversation_id: str
    user_id: str
    role: Role
    text: str
    timestamp: int
    sort_key: str
    ai_model: Optional[str] = None
    model_name: Optional[str] = None
    sources: List[Citation] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        conversation_id: str,
        user_id: str,
        role: Role,
        text: str,
        **kwargs: Any,
    ) -> "ChatTurn":
        ts = now_ms()
        return cls(
            conversation_id=conversation_id,
            user_id=user_id,
            role=role,
            text=text,
            timestamp=ts,
            sort_key=make_sort_key(ts),
            **kwargs,
        )

    @property
    def order_key(self) -> Tuple[int, str]:
        return (self.timestamp, self.sort_key)


@dataclass
class ResponderReply:
    """应答方返回的统一结果。"""

    text: str
    ai_model: str
    model_name: Optional[str] = None
    sources: List[Citation] = field(default_factory=list)


@dataclass
class ChatOutcome:
    """一次编排调用的结果：助手轮次 + 会话 ID。"""

    conversation_id: str
    assistant_turn: ChatTurn
    user_turn: ChatTurn
