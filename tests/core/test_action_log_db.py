"""DB-backed action log store tests."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from core.action_log.store import DjangoActionLogStore
from core.commands.undo import Snapshot, UnknownUndoToken, create_action_log_entry

pytestmark = pytest.mark.django_db(transaction=True)

BIZ = uuid.uuid4()
ORG = uuid.uuid4()
NOW = datetime(2026, 3, 2, 10, 0, 0, tzinfo=timezone.utc)


def _entry(resource_id="o-1", before=None, executed_at=NOW):
    return create_action_log_entry(
        command_id=uuid.uuid4(),
        command_type="sales.payment.record.request",
        action_label="Record payment",
        tenant_id=BIZ,
        organization_id=ORG,
        actor_id="user-1",
        executed_at=executed_at,
        before=Snapshot.capture("sales.document", resource_id, before),
        after=Snapshot.capture(
            "sales.document",
            resource_id,
            {"document_id": resource_id, "payments": [{"amount": "10.00"}]},
        ),
        change_keys=("payments",),
    )


def test_append_and_get_round_trip():
    store = DjangoActionLogStore()
    entry = _entry(before={"document_id": "o-1", "payments": []})
    store.append(entry)

    loaded = store.get(entry.undo_token)

    assert loaded.undo_token == entry.undo_token
    assert loaded.command_id == entry.command_id
    assert loaded.tenant_id == BIZ
    assert loaded.organization_id == ORG
    assert loaded.snapshot_before == entry.snapshot_before
    assert loaded.snapshot_after == entry.snapshot_after
    assert loaded.changes == {
        "payments": {"from": [], "to": [{"amount": "10.00"}]}
    }
    assert not loaded.is_undone


def test_missing_before_state_survives_round_trip():
    store = DjangoActionLogStore()
    entry = _entry()
    store.append(entry)
    loaded = store.get(entry.undo_token)
    assert loaded.snapshot_before.state is None
    assert not loaded.snapshot_before.exists


def test_get_unknown_token_returns_none():
    assert DjangoActionLogStore().get("missing") is None


def test_mark_undone_then_redone():
    store = DjangoActionLogStore()
    entry = _entry()
    store.append(entry)

    undone = store.mark_undone(entry.undo_token, NOW + timedelta(minutes=5))
    assert undone.undone_at == NOW + timedelta(minutes=5)

    redone = store.mark_redone(entry.undo_token)
    assert redone.undone_at is None


def test_mark_unknown_token_raises():
    with pytest.raises(UnknownUndoToken):
        DjangoActionLogStore().mark_undone("missing", NOW)


def test_list_for_resource_ordered_by_execution():
    store = DjangoActionLogStore()
    later = _entry(executed_at=NOW + timedelta(minutes=1))
    earlier = _entry(executed_at=NOW)
    store.append(later)
    store.append(earlier)
    store.append(_entry(resource_id="o-2"))

    listed = store.list_for_resource("sales.document", "o-1")

    assert [e.undo_token for e in listed] == [earlier.undo_token, later.undo_token]
