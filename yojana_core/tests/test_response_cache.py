import json
import tempfile
from pathlib import Path

import pytest

from yojana_core.domain.exceptions import BusinessError
from yojana_core.infrastructure.cache.response_cache import (
    CacheEntry,
    InMemoryCacheBackend,
    JsonFileCacheBackend,
    ResponseCache,
    create_response_cache,
)


def test_cache_hit_within_window():
    now = [0.0]
    cache = ResponseCache(ttl_seconds=10, clock=lambda: now[0])
    cache.put("q", {"text": "a"})
    now[0] = 9.9
    assert cache.get("q") == {"text": "a"}
    now[0] = 10.0
    assert cache.get("q") is None
    assert cache.get("missing") is None


def test_cache_overwrite_and_clear():
    backend = InMemoryCacheBackend()
    cache = ResponseCache(backend=backend, ttl_seconds=10)
    cache.put("q", {"text": "a"})
    cache.put("q", {"text": "b"})
    assert cache.get("q") == {"text": "b"}
    assert len(backend) == 1
    cache.clear()
    assert cache.get("q") is None
    assert len(backend) == 0


def test_expired_entries_are_kept_until_clear():
    now = [0.0]
    backend = InMemoryCacheBackend()
    cache = ResponseCache(backend=backend, ttl_seconds=1, clock=lambda: now[0])
    cache.put("q", {"text": "a"})
    now[0] = 5.0
    assert cache.get("q") is None
    assert len(backend) == 1


def test_json_backend_persists_between_instances():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "cache" / "responses.json"
        ResponseCache(backend=JsonFileCacheBackend(path), ttl_seconds=60).put("q", {"text": "a", "sources": []})
        reopened = ResponseCache(backend=JsonFileCacheBackend(path), ttl_seconds=60)
        assert reopened.get("q") == {"text": "a", "sources": []}
        reopened.clear()
        assert reopened.get("q") is None


def test_create_response_cache_selects_backend():
    with tempfile.TemporaryDirectory() as d:
        class Cfg:
            response_cache_backend = "json"
            response_cache_ttl_seconds = 30.0
            storage_root = d

        cache = create_response_cache(Cfg())
        cache.put("q", {"text": "a"})
        assert (Path(d) / "cache" / "responses.json").exists()
        assert cache.ttl_seconds == 30.0


def test_json_backend_entry_without_value_is_a_miss():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "responses.json"
        path.write_text(
            json.dumps({
                "no-value": {"inserted_at": 0.0},
                "bad-time": {"value": {"text": "a"}, "inserted_at": "yesterday"},
                "ok": {"value": {"text": "b"}, "inserted_at": 0.0},
            }),
            encoding="utf-8",
        )
        cache = ResponseCache(backend=JsonFileCacheBackend(path), ttl_seconds=60, clock=lambda: 1.0)
        assert cache.get("no-value") is None
        assert cache.get("bad-time") is None
        assert cache.get("ok") == {"text": "b"}


def test_json_backend_unwritable_directory_raises_business_error():
    with tempfile.TemporaryDirectory() as d:
        blocker = Path(d) / "cache"
        blocker.write_text("blocked", encoding="utf-8")
        backend = JsonFileCacheBackend(blocker / "responses.json")
        with pytest.raises(BusinessError) as exc_info:
            backend.put("q", CacheEntry(value={"text": "a"}, inserted_at=0.0))
        assert exc_info.value.code == "CACHE_WRITE_ERROR"
