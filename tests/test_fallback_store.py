# tests/test_fallback_store.py

from __future__ import annotations

from pathlib import Path

from secbrain.storage.fallback_store import FallbackStore, PendingOp


def test_kv_set_get_delete_and_prefix_scan(tmp_path: Path) -> None:
    store = FallbackStore(tmp_path / "fb.sqlite3")

    store.set("projects:1", {"id": "1", "name": "A"})
    store.set("projects:2", {"id": "2", "name": "B"})
    store.set("habits:1", {"id": "1"})

    assert store.get("projects:1") == {"id": "1", "name": "A"}
    assert store.get("missing") is None
    assert [k for k, _ in store.items("projects:")] == ["projects:1", "projects:2"]
    assert store.count("projects:") == 2
    assert store.count() == 3

    store.set("projects:1", {"id": "1", "name": "A2"})
    assert store.get("projects:1")["name"] == "A2"

    assert store.delete("projects:1") is True
    assert store.delete("projects:1") is False
    assert store.get("projects:1") is None


def test_data_survives_reopen(tmp_path: Path) -> None:
    db = tmp_path / "fb.sqlite3"
    FallbackStore(db).set("goals:g1", {"id": "g1"})
    FallbackStore(db).enqueue(key="goals:g1", collection="goals", doc_id="g1", op=PendingOp.SET, payload={"id": "g1"})

    reopened = FallbackStore(db)
    assert reopened.get("goals:g1") == {"id": "g1"}
    assert reopened.pending_count() == 1


def test_outbox_keeps_latest_intent_per_key_in_queue_order(tmp_path: Path) -> None:
    store = FallbackStore(tmp_path / "fb.sqlite3")

    store.enqueue(key="projects:1", collection="projects", doc_id="1", op=PendingOp.SET, payload={"v": 1})
    store.enqueue(key="projects:2", collection="projects", doc_id="2", op=PendingOp.SET, payload={"v": 1})
    store.enqueue(key="projects:1", collection="projects", doc_id="1", op=PendingOp.DELETE)

    pending = store.pending()
    assert [(p.key, p.op) for p in pending] == [
        ("projects:2", PendingOp.SET),
        ("projects:1", PendingOp.DELETE),
    ]
    assert pending[1].payload is None
    assert store.pending_keys("projects:") == {"projects:2": PendingOp.SET, "projects:1": PendingOp.DELETE}
    assert store.pending(limit=1)[0].key == "projects:2"


def test_clear_pending_with_seq_only_drops_that_entry(tmp_path: Path) -> None:
    store = FallbackStore(tmp_path / "fb.sqlite3")

    store.enqueue(key="habits:h", collection="habits", doc_id="h", op=PendingOp.SET, payload={"v": 1})
    old_seq = store.pending_seq("habits:h")
    store.enqueue(key="habits:h", collection="habits", doc_id="h", op=PendingOp.SET, payload={"v": 2})

    store.clear_pending("habits:h", seq=old_seq)
    assert store.has_pending("habits:h")
    assert store.pending()[0].payload == {"v": 2}

    store.clear_pending("habits:h")
    assert not store.has_pending("habits:h")
    assert store.pending_count() == 0


def test_set_aside_moves_a_refused_entry_out_of_the_outbox(tmp_path: Path) -> None:
    store = FallbackStore(tmp_path / "fb.sqlite3")
    store.enqueue(key="habits:bad", collection="habits", doc_id="bad", op=PendingOp.SET, payload={"v": 1})
    store.enqueue(key="habits:ok", collection="habits", doc_id="ok", op=PendingOp.DELETE)

    store.set_aside(store.pending()[0], reason="403 permission denied")

    assert [p.key for p in store.pending()] == ["habits:ok"]
    assert store.rejected_count() == 1


def test_anonymous_owner_id_is_per_installation_and_stable(tmp_path: Path) -> None:
    first = FallbackStore(tmp_path / "a.sqlite3")
    minted = first.anonymous_owner_id()

    assert minted.startswith("anonymous-")
    assert first.anonymous_owner_id() == minted
    assert FallbackStore(tmp_path / "a.sqlite3").anonymous_owner_id() == minted
    assert FallbackStore(tmp_path / "b.sqlite3").anonymous_owner_id() != minted
