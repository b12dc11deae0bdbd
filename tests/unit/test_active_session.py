from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from fixitnow_chat.application.exceptions import FetchError
from fixitnow_chat.config import settings
from fixitnow_chat.domain.entities.message import Message
from fixitnow_chat.services.active_session import ActiveConversationSession
from fixitnow_chat.services.normalizer import normalize
from tests.conftest import ALICE_ID, BOB_ID, make_conversation, raw_message, settle

CAROL_ID = 9


class Frames:
    def __init__(self) -> None:
        self.payloads: list[dict] = []
        self.opened: list[str] = []

    async def on_frame(self, payload: dict) -> None:
        self.payloads.append(payload)

    async def on_opened(self, conversation) -> None:
        self.opened.append(conversation.id)


@pytest.fixture
def frames() -> Frames:
    return Frames()


@pytest_asyncio.fixture
async def session(connection, api, frames):
    await connection.connect()
    yield ActiveConversationSession(
        connection,
        api,
        topic_for=settings.conversation_topic,
        on_frame=frames.on_frame,
        on_opened=frames.on_opened,
    )
    await connection.disconnect()


def _message(message_id: int | None, room_id: str = "3-7", **kwargs) -> Message:
    return normalize(raw_message(message_id, **kwargs), fallback_room_id=room_id)


def _pending(client_msg_id: uuid.UUID, text: str = "on my way") -> Message:
    return Message(
        id=None,
        sender_id=ALICE_ID,
        receiver_id=BOB_ID,
        text=text,
        room_id="3-7",
        sent_at=datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc),
        client_msg_id=client_msg_id,
        pending=True,
    )


@pytest.mark.asyncio
async def test_open_subscribes_and_loads_history(session, api, transport, frames):
    api.history["3-7"] = [raw_message(1), raw_message(2, text="second")]

    await session.open(make_conversation(BOB_ID))

    assert session.conversation_id == "3-7"
    assert [m.id for m in session.messages] == [1, 2]
    assert session.loading is False
    assert session.subscribed_conversations == ["3-7"]
    assert transport.subscribe_calls == ["/topic/conversation/3-7"]
    assert frames.opened == ["3-7"]


@pytest.mark.asyncio
async def test_topic_frames_reach_handler(session, transport, frames):
    await session.open(make_conversation(BOB_ID))

    transport.push("/topic/conversation/3-7", raw_message(5))
    await settle()

    assert frames.payloads == [raw_message(5)]


@pytest.mark.asyncio
async def test_switching_cancels_previous_topic(session, transport):
    await session.open(make_conversation(BOB_ID))
    await session.open(make_conversation(CAROL_ID))

    assert session.subscribed_conversations == ["3-9"]
    assert transport.unsubscribe_calls == ["/topic/conversation/3-7"]
    assert transport.active == {"/topic/conversation/3-9"}


@pytest.mark.asyncio
async def test_reopening_same_conversation_keeps_subscription(session, transport):
    await session.open(make_conversation(BOB_ID))
    await session.open(make_conversation(BOB_ID))

    assert transport.subscribe_calls == ["/topic/conversation/3-7"]
    assert transport.unsubscribe_calls == []


@pytest.mark.asyncio
async def test_stale_history_is_discarded(session, api):
    api.history["3-7"] = [raw_message(1, text="from bob")]
    api.history["3-9"] = [raw_message(2, sender_id=CAROL_ID, text="from carol")]
    api.gates["3-7"] = asyncio.Event()

    first = asyncio.create_task(session.open(make_conversation(BOB_ID)))
    await settle()
    await session.open(make_conversation(CAROL_ID))
    api.gates["3-7"].set()
    await first

    assert session.conversation_id == "3-9"
    assert [m.text for m in session.messages] == ["from carol"]


@pytest.mark.asyncio
async def test_open_superseded_during_subscribe_is_abandoned(session, api, transport, frames):
    transport.subscribe_gate = asyncio.Event()

    first = asyncio.create_task(session.open(make_conversation(BOB_ID)))
    await settle()
    second = asyncio.create_task(session.open(make_conversation(CAROL_ID)))
    await settle()
    transport.subscribe_gate.set()
    await asyncio.gather(first, second)

    assert session.conversation_id == "3-9"
    assert frames.opened == ["3-9"]
    assert api.history_calls == ["3-9"]
    assert session.subscribed_conversations == ["3-9"]


@pytest.mark.asyncio
async def test_stale_history_failure_is_ignored(session, api):
    api.gates["3-7"] = asyncio.Event()
    api.fail_history.add("3-7")

    first = asyncio.create_task(session.open(make_conversation(BOB_ID)))
    await settle()
    await session.open(make_conversation(CAROL_ID))
    api.gates["3-7"].set()

    await first
    assert session.conversation_id == "3-9"


@pytest.mark.asyncio
async def test_history_failure_keeps_selection(session, api):
    api.fail_history.add("3-7")

    with pytest.raises(FetchError):
        await session.open(make_conversation(BOB_ID))

    assert session.conversation_id == "3-7"
    assert session.loading is False
    assert session.messages == ()
    assert session.subscribed_conversations == ["3-7"]


@pytest.mark.asyncio
async def test_live_message_during_fetch_is_merged(session, api):
    api.history["3-7"] = [raw_message(1), raw_message(50)]
    api.gates["3-7"] = asyncio.Event()

    task = asyncio.create_task(session.open(make_conversation(BOB_ID)))
    await settle()
    assert session.loading is True
    assert session.apply_inbound(_message(50)) is True
    assert session.apply_inbound(_message(51)) is True
    api.gates["3-7"].set()
    await task

    assert [m.id for m in session.messages] == [1, 50, 51]


@pytest.mark.asyncio
async def test_duplicate_live_message_is_ignored(session):
    await session.open(make_conversation(BOB_ID))

    assert session.apply_inbound(_message(5)) is True
    assert session.apply_inbound(_message(5)) is False

    assert [m.id for m in session.messages] == [5]


@pytest.mark.asyncio
async def test_message_for_other_room_is_ignored(session):
    await session.open(make_conversation(BOB_ID))

    assert session.apply_inbound(_message(5, room_id="3-9", sender_id=CAROL_ID)) is False
    assert session.messages == ()


def test_apply_inbound_without_selection_is_ignored(connection, api, frames):
    session = ActiveConversationSession(
        connection, api, topic_for=settings.conversation_topic, on_frame=frames.on_frame,
    )
    assert session.apply_inbound(_message(5)) is False


@pytest.mark.asyncio
async def test_pending_is_replaced_by_server_copy(session):
    await session.open(make_conversation(BOB_ID))
    client_id = uuid.uuid4()
    session.add_pending(_pending(client_id))

    server = _message(101, sender_id=ALICE_ID, receiver_id=BOB_ID, text="on my way")
    session.reconcile_sent(client_id, server)

    assert len(session.messages) == 1
    assert session.messages[0].id == 101
    assert session.messages[0].pending is False


@pytest.mark.asyncio
async def test_echo_before_response_leaves_single_copy(session):
    await session.open(make_conversation(BOB_ID))
    client_id = uuid.uuid4()
    session.add_pending(_pending(client_id))

    echo = _message(101, sender_id=ALICE_ID, receiver_id=BOB_ID, text="on my way")
    session.apply_inbound(echo)
    session.reconcile_sent(client_id, echo)

    assert [(m.id, m.pending) for m in session.messages] == [(101, False)]


@pytest.mark.asyncio
async def test_echo_with_client_id_replaces_pending(session):
    await session.open(make_conversation(BOB_ID))
    client_id = uuid.uuid4()
    session.add_pending(_pending(client_id))

    echo = _message(
        101, sender_id=ALICE_ID, receiver_id=BOB_ID, text="on my way", clientMsgId=str(client_id),
    )
    assert session.apply_inbound(echo) is True
    session.reconcile_sent(client_id, echo)

    assert [(m.id, m.pending) for m in session.messages] == [(101, False)]


@pytest.mark.asyncio
async def test_discard_pending(session):
    await session.open(make_conversation(BOB_ID))
    client_id = uuid.uuid4()
    session.add_pending(_pending(client_id))

    session.discard_pending(client_id)

    assert session.messages == ()


@pytest.mark.asyncio
async def test_pending_for_other_conversation_is_not_shown(session):
    await session.open(make_conversation(CAROL_ID))

    assert session.add_pending(_pending(uuid.uuid4())) is False
    assert session.messages == ()


@pytest.mark.asyncio
async def test_close_clears_selection_and_topic(session, transport):
    await session.open(make_conversation(BOB_ID))
    session.apply_inbound(_message(5))

    await session.close()

    assert session.selected is None
    assert session.messages == ()
    assert session.subscribed_conversations == []
    assert transport.unsubscribe_calls == ["/topic/conversation/3-7"]
