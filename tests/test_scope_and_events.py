import pytest

from studysync.realtime.events import ChangeEvent, EventType
from studysync.realtime.scope import Scope


def test_scope_derives_filter_and_eq():
    scope = Scope.of("messages", "group_id", "g1")
    assert scope.filter == "group_id=eq.g1"
    assert scope.eq == {"group_id": "g1"}


def test_unscoped_table_has_no_filter():
    scope = Scope("groups")
    assert scope.filter is None
    assert scope.eq == {}
    assert scope.matches({"id": "x"})


def test_identity_is_stable_across_instances():
    first = Scope.of("resources", "group_id", "g1", descending=True)
    second = Scope.of("resources", "group_id", "g1", descending=True)
    assert first.identity("*") == second.identity("*")
    assert first.channel_name("*") == second.channel_name("*")
    assert first.identity("INSERT") != first.identity("*")


def test_identity_rejects_unknown_event():
    with pytest.raises(ValueError):
        Scope.of("messages", "group_id", "g1").identity("TRUNCATE")


def test_key_of_composite_key():
    scope = Scope.of("session_attendees", "session_id", "s1", key=("session_id", "user_id"))
    assert scope.key_of({"session_id": "s1", "user_id": "u1", "id": "a"}) == ("s1", "u1")
    assert scope.key_of({"id": "a"}) is None


def test_matches_compares_as_strings():
    scope = Scope.of("messages", "group_id", 42)
    assert scope.matches({"group_id": 42})
    assert not scope.matches({"group_id": 43})
    assert not scope.matches(None)


def test_event_from_nested_payload():
    event = ChangeEvent.from_payload({
        "data": {
            "type": "UPDATE",
            "record": {"id": "1", "title": "new"},
            "old_record": {"id": "1"},
            "commit_timestamp": "2026-03-01T10:00:00Z",
        },
        "ids": [1],
    })
    assert event.event_type == EventType.UPDATE
    assert event.new == {"id": "1", "title": "new"}
    assert event.old == {"id": "1"}
    assert event.commit_timestamp.year == 2026
    assert event.commit_timestamp.tzinfo is not None


def test_event_from_flat_payload():
    event = ChangeEvent.from_payload({"eventType": "DELETE", "new": {}, "old": {"id": "9"}})
    assert event.event_type == EventType.DELETE
    assert event.new is None
    assert event.record == {"id": "9"}
    assert event.commit_timestamp is None


def test_event_without_type_is_rejected():
    with pytest.raises(ValueError):
        ChangeEvent.from_payload({"data": {"record": {"id": "1"}}})
