"""
SBO Command Layer — snapshot, action log and undo payload tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from core.commands.undo import (
    ActionLogEntry,
    InMemoryActionLog,
    Snapshot,
    UnknownUndoToken,
    build_changes,
    create_action_log_entry,
    extract_undo_payload,
)

BIZ = uuid.uuid4()
ORG = uuid.uuid4()
NOW = datetime(2026, 3, 2, 10, 0, 0, tzinfo=timezone.utc)


def make_entry(before=None, after=None, resource_id="q-1") -> ActionLogEntry:
    before_state = before
    after_state = after if after is not None else {"document_id": resource_id, "status": "DRAFT"}
    return create_action_log_entry(
        command_id=uuid.uuid4(),
        command_type="sales.document.update.request",
        action_label="Update quote",
        tenant_id=BIZ,
        organization_id=ORG,
        actor_id="user-1",
        executed_at=NOW,
        before=Snapshot.capture("sales.document", resource_id, before_state),
        after=Snapshot.capture("sales.document", resource_id, after_state),
        change_keys=("status", "comment", "updated_at"),
    )


class TestSnapshot:
    def test_capture_is_deep_copy(self):
        state = {"lines": [{"line_id": "l-1"}]}
        snap = Snapshot.capture("sales.document", "q-1", state)
        state["lines"][0]["line_id"] = "changed"
        assert snap.state["lines"][0]["line_id"] == "l-1"

    def test_restore_returns_fresh_copy(self):
        snap = Snapshot.capture("sales.document", "q-1", {"tags": ["a"]})
        restored = snap.restore()
        restored["tags"].append("b")
        assert snap.restore() == {"tags": ["a"]}

    def test_missing_resource(self):
        snap = Snapshot.capture("sales.document", "q-1", None)
        assert not snap.exists
        assert snap.restore() is None

    def test_dict_round_trip(self):
        snap = Snapshot.capture("sales.channel", "web", {"name": "Web"})
        assert Snapshot.from_dict(snap.to_dict()) == snap
        assert Snapshot.from_dict(None) is None


class TestBuildChanges:
    def test_diff_skips_updated_at(self):
        changes = build_changes(
            {"status": "DRAFT", "updated_at": "a"},
            {"status": "OPEN", "updated_at": "b"},
            ("status", "updated_at"),
        )
        assert changes == {"status": {"from": "DRAFT", "to": "OPEN"}}

    def test_no_before_state(self):
        assert build_changes(None, {"status": "OPEN"}, ("status",)) == {}

    def test_unchanged_keys_omitted(self):
        assert build_changes({"a": 1}, {"a": 1}, ("a",)) == {}


class TestActionLogEntry:
    def test_entry_carries_snapshots_and_changes(self):
        entry = make_entry(
            before={"document_id": "q-1", "status": "DRAFT"},
            after={"document_id": "q-1", "status": "SENT"},
        )
        assert entry.resource_kind == "sales.document"
        assert entry.resource_id == "q-1"
        assert entry.changes == {"status": {"from": "DRAFT", "to": "SENT"}}
        assert not entry.is_undone
        uuid.UUID(entry.undo_token)

    def test_tokens_are_unique(self):
        assert make_entry().undo_token != make_entry().undo_token


class TestExtractUndoPayload:
    def test_from_entry(self):
        entry = make_entry(before={"status": "DRAFT"}, after={"status": "SENT"})
        payload = extract_undo_payload(entry)
        assert payload["before"]["state"] == {"status": "DRAFT"}
        assert payload["after"]["state"] == {"status": "SENT"}

    def test_envelope_in_payload(self):
        envelope = {"before": {"x": 1}, "after": {"x": 2}}
        assert extract_undo_payload({"payload": {"undo": envelope}}) == envelope

    def test_envelope_in_value(self):
        envelope = {"before": None, "after": {"x": 2}}
        log = {"command_payload": {"value": {"undo": envelope}}}
        assert extract_undo_payload(log) == envelope

    def test_nested_envelope_skips_redo_input(self):
        envelope = {"before": {"x": 1}, "after": None}
        log = {
            "payload": {
                "__redoInput": {"undo": {"before": "wrong"}},
                "result": {"undo": envelope},
            }
        }
        assert extract_undo_payload(log) == envelope

    def test_falls_back_to_snapshots(self):
        log = {"payload": {}, "snapshot_before": {"x": 1}, "snapshot_after": {"x": 2}}
        assert extract_undo_payload(log) == {"before": {"x": 1}, "after": {"x": 2}}

    def test_nothing_to_undo(self):
        assert extract_undo_payload({"payload": {}}) is None
        assert extract_undo_payload(None) is None


class TestInMemoryActionLog:
    def test_append_and_get(self):
        log = InMemoryActionLog()
        entry = make_entry()
        log.append(entry)
        assert log.get(entry.undo_token) == entry
        assert len(log) == 1

    def test_duplicate_token_rejected(self):
        log = InMemoryActionLog()
        entry = make_entry()
        log.append(entry)
        with pytest.raises(ValueError, match="Duplicate undo token"):
            log.append(entry)

    def test_mark_undone_and_redone(self):
        log = InMemoryActionLog()
        entry = make_entry()
        log.append(entry)

        undone = log.mark_undone(entry.undo_token, NOW + timedelta(minutes=1))
        assert undone.is_undone
        assert log.get(entry.undo_token).is_undone

        redone = log.mark_redone(entry.undo_token)
        assert not redone.is_undone

    def test_unknown_token(self):
        with pytest.raises(UnknownUndoToken):
            InMemoryActionLog().mark_undone("missing", NOW)

    def test_list_for_resource_keeps_order(self):
        log = InMemoryActionLog()
        first = make_entry(resource_id="q-1")
        other = make_entry(resource_id="q-2")
        second = make_entry(resource_id="q-1")
        for entry in (first, other, second):
            log.append(entry)

        listed = log.list_for_resource("sales.document", "q-1")
        assert [e.undo_token for e in listed] == [first.undo_token, second.undo_token]
