import json
import re
import time
from pathlib import Path
from typing import Any, Dict, List

from yojana_core.config.settings import settings
from yojana_core.domain.conversation import ConversationStore
from yojana_core.domain.exceptions import StoreUnavailable
from yojana_core.domain.models import ChatTurn, Citation


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class JsonConversationStore(ConversationStore):
    """按会话分文件的 JSONL 追加日志。

    每条记录形如 {conversationId, timestamp, userId, role, text, sortKey,
    aiModel, modelName, sources, expiryTime}。写入不加锁，
    读取时按 (timestamp, sortKey) 排序，过期记录直接跳过。
    """

    def __init__(self, root: str | Path | None = None, ttl_days: int | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        # 目录在首次写入时创建，存储不可用不影响构造
        self._conv_root = self._root / "conversations"
        self._ttl_seconds = int(ttl_days or settings.history_ttl_days) * 86400

    def append(self, turn: ChatTurn) -> None:
        path = self._path_for(turn.conversation_id)
        try:
            line = json.dumps(self._to_record(turn), ensure_ascii=False)
            self._conv_root.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except (OSError, TypeError, ValueError) as e:
            raise StoreUnavailable(code="STORE_WRITE_ERROR", message=str(e))

    def recent(self, conversation_id: str, limit: int) -> List[ChatTurn]:
        """返回最近 limit 条轮次，从新到旧。"""
        if limit <= 0:
            return []
        items = self._load(conversation_id)
        items.sort(key=lambda t: t.order_key, reverse=True)
        return items[:limit]

    def _load(self, conversation_id: str) -> List[ChatTurn]:
        path = self._path_for(conversation_id)
        items: List[ChatTurn] = []
        if not path.exists():
            return items
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise StoreUnavailable(code="STORE_READ_ERROR", message=str(e))
        now = time.time()
        for line in lines:
            try:
                data = json.loads(line)
                if data.get("conversationId") != conversation_id:
                    continue
                expiry = data.get("expiryTime")
                if expiry is not None and float(expiry) <= now:
                    continue
                items.append(self._to_turn(data))
            except (AttributeError, KeyError, TypeError, ValueError):
                continue
        return items

    def _path_for(self, conversation_id: str) -> Path:
        return self._conv_root / f"{_UNSAFE_CHARS.sub('_', conversation_id)}.jsonl"

    def _to_record(self, turn: ChatTurn) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "conversationId": turn.conversation_id,
            "timestamp": turn.timestamp,
            "userId": turn.user_id,
            "role": turn.role,
            "text": turn.text,
            "sortKey": turn.sort_key,
            "expiryTime": turn.timestamp // 1000 + self._ttl_seconds,
        }
        if turn.role == "assistant":
            record["aiModel"] = turn.ai_model
            record["modelName"] = turn.model_name
            record["sources"] = [s.to_dict() for s in turn.sources]
        return record

    def _to_turn(self, data: Dict[str, Any]) -> ChatTurn:
        return ChatTurn(
            conversation_id=data["conversationId"],
            user_id=data.get("userId") or "",
            role=data["role"],
            text=data.get("text") or "",
            timestamp=int(data["timestamp"]),
            sort_key=str(data.get("sortKey") or data["timestamp"]),
            ai_model=data.get("aiModel"),
            model_name=data.get("modelName"),
            sources=[
                Citation(title=s.get("title") or "", uri=s["uri"])
                for s in data.get("sources") or []
                if isinstance(s, dict) and s.get("uri")
            ],
        )
