"""Local collection behaviour: replay, ordering, idempotence and overlays."""

from studysync.realtime.collection import LocalCollection
from studysync.realtime.events import ChangeEvent
from studysync.realtime.scope import Scope


def _scope(**kwargs):
    return Scope.of("messages", "group_id", "g1", **kwargs)


def _insert(record, ts=None):
    return ChangeEvent.from_payload({"eventType": "INSERT", "new": record, "commit_timestamp": ts})


def _update(record, ts=None):
    return ChangeEvent.from_payload({"eventType": "UPDATE", "new": record, "commit_timestamp": ts})


def _delete(old, ts=None):
    return ChangeEvent.from_payload({"eventType": "DELETE", "old": old, "commit_timestamp": ts})


def test_replace_installs_snapshot_in_order():
    collection = LocalCollection(_scope())
    collection.replace([
        {"id": "m1", "group_id": "g1", "content": "hi"},
        {"id": "m2", "group_id": "g1", "content": "there"},
    ])
    assert [r["id"] for r in collection.records] == ["m1", "m2"]
    assert len(collection) == 2
    assert ("m1",) in collection


def test_insert_appends_for_ascending_scope():
    collection = LocalCollection(_scope())
    collection.replace([{"id": "m1", "group_id": "g1"}])
    assert collection.apply(_insert({"id": "m2", "group_id": "g1"}))
    assert [r["id"] for r in collection.records] == ["m1", "m2"]


def test_insert_prepends_for_descending_scope():
    collection = LocalCollection(Scope.of("resources", "group_id", "g1", descending=True))
    collection.replace([{"id": "r2", "group_id": "g1"}, {"id": "r1", "group_id": "g1"}])
    collection.apply(_insert({"id": "r3", "group_id": "g1"}))
    assert [r["id"] for r in collection.records] == ["r3", "r2", "r1"]


def test_events_replay_in_delivery_order():
    collection = LocalCollection(_scope())
    collection.replace([])
    collection.apply(_insert({"id": "e1", "group_id": "g1", "content": "first"}))
    collection.apply(_insert({"id": "e2", "group_id": "g1", "content": "second"}))
    assert [r["id"] for r in collection.records] == ["e1", "e2"]


def test_insert_for_existing_key_merges():
    collection = LocalCollection(_scope())
    collection.replace([{"id": "m1", "group_id": "g1", "content": "hi", "profile": {"name": "Ann"}}])
    collection.apply(_insert({"id": "m1", "group_id": "g1", "content": "hi"}))
    assert len(collection) == 1
    assert collection.get(("m1",))["profile"] == {"name": "Ann"}


def test_update_replaces_in_place():
    collection = LocalCollection(_scope())
    collection.replace([
        {"id": "m1", "group_id": "g1", "content": "a"},
        {"id": "m2", "group_id": "g1", "content": "b"},
    ])
    assert collection.apply(_update({"id": "m1", "group_id": "g1", "content": "edited"}))
    assert [r["content"] for r in collection.records] == ["edited", "b"]


def test_update_for_unknown_key_is_ignored():
    collection = LocalCollection(_scope())
    collection.replace([])
    assert not collection.apply(_update({"id": "ghost", "group_id": "g1"}))
    assert collection.records == []


def test_update_moving_row_out_of_scope_removes_it():
    collection = LocalCollection(_scope())
    collection.replace([{"id": "m1", "group_id": "g1"}])
    assert collection.apply(_update({"id": "m1", "group_id": "g2"}))
    assert collection.records == []


def test_delete_is_idempotent():
    collection = LocalCollection(_scope())
    collection.replace([{"id": "m1", "group_id": "g1"}, {"id": "m2", "group_id": "g1"}])
    assert collection.apply(_delete({"id": "m1"}))
    assert not collection.apply(_delete({"id": "m1"}))
    assert [r["id"] for r in collection.records] == ["m2"]


def test_delete_of_absent_record_is_noop():
    collection = LocalCollection(_scope())
    collection.replace([{"id": "m1", "group_id": "g1"}])
    assert not collection.apply(_delete({"id": "nope"}))
    assert len(collection) == 1


def test_delete_with_only_id_finds_composite_key():
    scope = Scope.of("session_attendees", "session_id", "s1", key=("session_id", "user_id"))
    collection = LocalCollection(scope)
    collection.replace([{"id": "a1", "session_id": "s1", "user_id": "u1", "status": "confirmed"}])
    assert collection.apply(_delete({"id": "a1"}))
    assert collection.records == []


def test_last_writer_wins_by_commit_timestamp():
    collection = LocalCollection(_scope())
    collection.replace([{"id": "m1", "group_id": "g1", "content": "v0"}])
    collection.apply(_update({"id": "m1", "group_id": "g1", "content": "v2"}, ts="2026-03-01T10:00:02Z"))
    assert not collection.apply(_update({"id": "m1", "group_id": "g1", "content": "v1"}, ts="2026-03-01T10:00:01Z"))
    assert collection.get(("m1",))["content"] == "v2"


def test_stale_delete_does_not_remove_newer_row():
    collection = LocalCollection(_scope())
    collection.replace([])
    collection.apply(_insert({"id": "m1", "group_id": "g1"}, ts="2026-03-01T10:00:05Z"))
    assert not collection.apply(_delete({"id": "m1"}, ts="2026-03-01T10:00:01Z"))
    assert len(collection) == 1


def test_record_without_key_is_ignored():
    collection = LocalCollection(_scope())
    collection.replace([])
    assert not collection.apply(_insert({"group_id": "g1", "content": "keyless"}))
    assert collection.records == []


def test_stage_overlays_and_discard_rolls_back():
    scope = Scope.of("session_attendees", "session_id", "s1", key=("session_id", "user_id"))
    collection = LocalCollection(scope)
    collection.replace([{"id": "a1", "session_id": "s1", "user_id": "u1", "status": "tentative"}])
    token = collection.stage(("s1", "u1"), {"session_id": "s1", "user_id": "u1", "status": "confirmed"})
    assert collection.get(("s1", "u1"))["status"] == "confirmed"
    assert collection.has_pending
    assert collection.discard(token)
    assert collection.get(("s1", "u1"))["status"] == "tentative"
    assert not collection.has_pending
    assert not collection.discard(token)


def test_staged_new_record_is_visible_until_settled():
    scope = Scope.of("session_attendees", "session_id", "s1", key=("session_id", "user_id"))
    collection = LocalCollection(scope)
    collection.replace([])
    token = collection.stage(("s1", "u1"), {"session_id": "s1", "user_id": "u1", "status": "confirmed"})
    assert [r["user_id"] for r in collection.records] == ["u1"]
    collection.settle(token, {"id": "a1", "session_id": "s1", "user_id": "u1", "status": "confirmed"})
    assert collection.base_records == [{"id": "a1", "session_id": "s1", "user_id": "u1", "status": "confirmed"}]
    assert not collection.has_pending


def test_settle_defers_to_feed_event_that_arrived_mid_flight():
    scope = Scope.of("session_attendees", "session_id", "s1", key=("session_id", "user_id"))
    collection = LocalCollection(scope)
    collection.replace([{"id": "a1", "session_id": "s1", "user_id": "u1", "status": "tentative"}])
    token = collection.stage(("s1", "u1"), {"session_id": "s1", "user_id": "u1", "status": "confirmed"})
    collection.apply(_update({"id": "a1", "session_id": "s1", "user_id": "u1", "status": "declined"}))
    collection.settle(token, {"id": "a1", "session_id": "s1", "user_id": "u1", "status": "confirmed"})
    assert collection.get(("s1", "u1"))["status"] == "declined"


def test_snapshot_replace_keeps_pending_overlay():
    collection = LocalCollection(_scope())
    collection.replace([{"id": "m1", "group_id": "g1", "content": "a"}])
    collection.stage(("m1",), {"id": "m1", "group_id": "g1", "content": "draft"})
    collection.replace([{"id": "m1", "group_id": "g1", "content": "server"}])
    assert collection.get(("m1",))["content"] == "draft"
    assert collection.base_records[0]["content"] == "server"
