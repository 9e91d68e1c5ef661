import json
import random
import tempfile
from pathlib import Path

import pytest

from yojana_core.domain.exceptions import StoreUnavailable
from yojana_core.domain.models import ChatTurn, Citation
from yojana_core.infrastructure.storage.json_store import JsonConversationStore


def test_json_store_append_and_recent():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d) / ".storage", ttl_days=90)
        user = ChatTurn.create("conv-u1-1", "u1", "user", "hello")
        bot = ChatTurn.create(
            "conv-u1-1",
            "u1",
            "assistant",
            "Try PM-KISAN",
            ai_model="secondary",
            model_name="Gemini",
            sources=[Citation(title="pmkisan.gov.in", uri="https://pmkisan.gov.in/")],
        )
        store.append(user)
        store.append(bot)
        recent = store.recent("conv-u1-1", 10)
        assert [t.role for t in recent] == ["assistant", "user"]
        assert recent[0].ai_model == "secondary"
        assert recent[0].sources[0].uri == "https://pmkisan.gov.in/"
        assert recent[1].text == "hello"
        assert store.recent("conv-u1-1", 1)[0].sort_key == bot.sort_key
        assert store.recent("other", 10) == []


def test_json_store_record_shape():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        store = JsonConversationStore(root=root, ttl_days=90)
        turn = ChatTurn.create("conv-u1-2", "u1", "user", "hello")
        store.append(turn)
        line = (root / "conversations" / "conv-u1-2.jsonl").read_text(encoding="utf-8").strip()
        record = json.loads(line)
        assert record["conversationId"] == "conv-u1-2"
        assert record["userId"] == "u1"
        assert record["role"] == "user"
        assert record["text"] == "hello"
        assert record["sortKey"] == turn.sort_key
        assert record["expiryTime"] == turn.timestamp // 1000 + 90 * 86400


def test_json_store_orders_interleaved_writes():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d) / ".storage")
        turns = [ChatTurn.create("c", "u1", "user" if i % 2 == 0 else "assistant", f"m{i}") for i in range(12)]
        shuffled = list(turns)
        random.Random(7).shuffle(shuffled)
        for t in shuffled:
            store.append(t)
        newest_first = store.recent("c", 50)
        assert [t.text for t in reversed(newest_first)] == [t.text for t in turns]


def test_json_store_skips_expired_records():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        store = JsonConversationStore(root=root)
        store.append(ChatTurn.create("c", "u1", "user", "fresh"))
        path = root / "conversations" / "c.jsonl"
        stale = {"conversationId": "c", "timestamp": 1, "userId": "u1", "role": "user", "text": "old", "sortKey": "1-0.1", "expiryTime": 10}
        with path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(stale) + "\n")
            f.write("not json\n")
        texts = [t.text for t in store.recent("c", 10)]
        assert texts == ["fresh"]


def test_json_store_sanitizes_conversation_id():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        store = JsonConversationStore(root=root)
        store.append(ChatTurn.create("conv-a/b:c", "a/b", "user", "x"))
        assert (root / "conversations" / "conv-a_b_c.jsonl").exists()
        assert store.recent("conv-a/b:c", 5)[0].text == "x"
        assert store.recent("conv-a_b_c", 5) == []


def test_json_store_write_failure_raises_store_unavailable():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        root.mkdir()
        (root / "conversations").write_text("blocked", encoding="utf-8")
        store = JsonConversationStore(root=root)
        with pytest.raises(StoreUnavailable):
            store.append(ChatTurn.create("c", "u1", "user", "x"))


def test_json_store_unwritable_root_does_not_fail_construction():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / "not-a-dir"
        root.write_text("blocked", encoding="utf-8")
        store = JsonConversationStore(root=root)
        with pytest.raises(StoreUnavailable):
            store.append(ChatTurn.create("c", "u1", "user", "x"))
        assert store.recent("c", 5) == []
