import pytest

from studysync.core.errors import LoadFailure, ValidationFailure, WriteFailure
from studysync.modules.messages.service import MAX_MESSAGE_LENGTH, MessageService
from tests.fakes import FakeBackend, drain


async def test_list_messages_oldest_first_with_authors(backend):
    backend.seed("profiles", id="user-alice", name="Alice", avatar=None)
    backend.seed("messages", id="m1", group_id="g1", user_id="user-alice", content="first")
    backend.seed("messages", id="m2", group_id="g1", user_id="user-ghost", content="second")

    messages = await MessageService(backend).list_messages("g1")

    assert [m.content for m in messages] == ["first", "second"]
    assert messages[0].profile.name == "Alice"
    assert messages[1].profile.name == "Unknown User"


async def test_list_messages_failure_is_not_empty(backend):
    backend.fail("select", "messages")
    with pytest.raises(LoadFailure):
        await MessageService(backend).list_messages("g1")


async def test_send_message_trims_content(backend, alice):
    message = await MessageService(backend).send_message("g1", alice, "  hello group  ")

    assert message.content == "hello group"
    assert backend.rows("messages")[0]["user_id"] == "user-alice"


@pytest.mark.parametrize("content", ["", "   ", "x" * (MAX_MESSAGE_LENGTH + 1)])
async def test_send_message_validation(backend, alice, content):
    with pytest.raises(ValidationFailure):
        await MessageService(backend).send_message("g1", alice, content)
    assert backend.calls == []


async def test_send_message_failure(backend, alice):
    backend.fail("insert", "messages")
    with pytest.raises(WriteFailure):
        await MessageService(backend).send_message("g1", alice, "hi")


async def test_live_view_appends_sent_messages(alice, bob):
    backend = FakeBackend(auto_emit=True)
    backend.seed("messages", id="m1", group_id="g1", user_id="user-bob", content="earlier")
    service = MessageService(backend)
    view = service.live_view("g1", alice)
    await view.mount()

    ack = await service.handle_action("g1", alice, {"action": "send", "content": "hi"})
    await MessageService(backend).send_message("g2", bob, "other group")
    await drain()

    assert ack["type"] == "ack"
    assert [r["content"] for r in view.records] == ["earlier", "hi"]
    await view.unmount()


async def test_unknown_action_is_rejected(backend, alice):
    with pytest.raises(ValidationFailure):
        await MessageService(backend).handle_action("g1", alice, {"action": "edit"})
