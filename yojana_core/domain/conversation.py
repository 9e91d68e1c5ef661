from typing import List, Protocol

from .models import ChatTurn


class ConversationStore(Protocol):
    """会话历史存储协议（只追加日志）。

    - append: 追加一条轮次，失败抛出 StoreUnavailable。
    - recent: 返回某会话最近 limit 条轮次，按 (timestamp, sort_key) 从新到旧，
      失败抛出 StoreUnavailable。

    两次 append 之间没有事务保证，user / assistant 的写入顺序由调用方负责。
    """

    def append(self, turn: ChatTurn) -> None:
        ...

    def recent(self, conversation_id: str, limit: int) -> List[ChatTurn]:
        ...
