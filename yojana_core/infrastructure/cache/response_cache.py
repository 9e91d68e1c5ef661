"""备用应答方的响应缓存。

缓存键是用户原始查询文本（不做任何归一化），与会话、用户无关：
任何人在有效期内发出完全相同的查询，都会拿到同一份答案。
条目只会因过期而失效，除非运维显式调用 clear()，否则不会被删除。

存储后端可插拔：
- InMemoryCacheBackend: 进程内 dict，生命周期等于进程。
- JsonFileCacheBackend: 落盘到 JSON 文件，可跨进程复用。
"""

import json
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol
from uuid import uuid4

from yojana_core.domain.exceptions import BusinessError


@dataclass
class CacheEntry:
    value: Dict[str, Any]
    inserted_at: float


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[CacheEntry]:
        ...

    def put(self, key: str, entry: CacheEntry) -> None:
        ...

    def clear(self) -> None:
        ...


class InMemoryCacheBackend:
    """进程内缓存，无锁；同一个键并发写入时后写者胜出。"""

    def __init__(self):
        self._items: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._items.get(key)

    def put(self, key: str, entry: CacheEntry) -> None:
        self._items[key] = entry

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class JsonFileCacheBackend:
    """单个 JSON 文件保存全部条目，写入时先写临时文件再原子替换。"""

    def __init__(self, path: str | Path):
        self._path = Path(path).resolve()

    def get(self, key: str) -> Optional[CacheEntry]:
        item = self._read_all().get(key)
        # 缺少 value 的残缺条目按未命中处理
        if not isinstance(item, dict) or not isinstance(item.get("value"), dict):
            return None
        try:
            inserted_at = float(item.get("inserted_at", 0.0))
        except (TypeError, ValueError):
            return None
        return CacheEntry(value=item["value"], inserted_at=inserted_at)

    def put(self, key: str, entry: CacheEntry) -> None:
        data = self._read_all()
        data[key] = {"value": entry.value, "inserted_at": entry.inserted_at}
        self._write_all(data)

    def clear(self) -> None:
        self._write_all({})

    def _read_all(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise BusinessError(code="CACHE_READ_ERROR", message=str(e), http_status=500)
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, Any]) -> None:
        tmp_path = self._path.with_name(f"{self._path.name}.{uuid4().hex}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise BusinessError(code="CACHE_WRITE_ERROR", message=str(e), http_status=500)


class ResponseCache:
    """带固定有效期的 key -> value 备忘录。

    - get(key): 命中且未过期时返回缓存值，否则返回 None。
    - put(key, value): 以当前时间写入（覆盖旧条目）。
    - clear(): 运维手动清空。
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ):
        self._backend = backend if backend is not None else InMemoryCacheBackend()
        self._ttl = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._backend.get(key)
        if entry is None:
            return None
        if self._clock() - entry.inserted_at >= self._ttl:
            return None
        return entry.value

    def put(self, key: str, value: Dict[str, Any]) -> None:
        self._backend.put(key, CacheEntry(value=value, inserted_at=self._clock()))

    def clear(self) -> None:
        self._backend.clear()


def create_response_cache(cfg) -> ResponseCache:
    """按配置选择缓存后端。"""

    backend: CacheBackend
    if getattr(cfg, "response_cache_backend", "memory") == "json":
        backend = JsonFileCacheBackend(Path(cfg.storage_root) / "cache" / "responses.json")
    else:
        backend = InMemoryCacheBackend()
    return ResponseCache(backend=backend, ttl_seconds=cfg.response_cache_ttl_seconds)
