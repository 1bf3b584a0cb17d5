"""
Queue ordering, routing and failure isolation.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from relaybot.ai_backend import AIReply
from relaybot.exceptions import InferenceError
from relaybot.media.models import ExtractionOutcome
from relaybot.presence import PresenceManager
from relaybot.scheduler import FAREWELL_REPLY, PROCESSING_ERROR_REPLY, MessageQueue
from relaybot.sessions import SessionStore


def build_queue(ai_enabled=False, ai_reply=None, media_outcome=None, **kwargs):
    dispatcher = MagicMock()
    dispatcher.sigil = "!"
    dispatcher.dispatch = AsyncMock(return_value=True)
    media_extractor = MagicMock()
    media_extractor.handle = AsyncMock(return_value=media_outcome or ExtractionOutcome())
    store = MagicMock()
    store.is_ai_enabled = AsyncMock(return_value=ai_enabled)
    return MessageQueue(
        dispatcher=dispatcher,
        media_extractor=media_extractor,
        store=store,
        sessions=SessionStore(),
        presence=PresenceManager(),
        ai_reply=ai_reply or AsyncMock(return_value=AIReply(text="hello")),
        **kwargs,
    )


def test_empty_messages_are_not_enqueued(make_message):
    queue = build_queue()
    assert queue.enqueue(make_message("")) is False
    assert queue.enqueue(None) is False
    assert queue.enqueue(make_message("hi")) is True
    assert len(queue) == 1
    assert queue.stats["enqueued"] == 1


@pytest.mark.asyncio
async def test_messages_are_processed_in_arrival_order(make_message):
    queue = build_queue()
    order = []
    queue.dispatcher.dispatch.side_effect = lambda message, chat: order.append(message.body)
    for body in ("!a", "!b", "!c"):
        queue.enqueue(make_message(body))

    assert await queue.process_queue() == 3

    assert order == ["!a", "!b", "!c"]
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_failure_does_not_block_later_messages(make_message):
    queue = build_queue()
    first, second = make_message("!boom"), make_message("!fine")

    def dispatch(message, chat):
        if message is first:
            raise RuntimeError("handler exploded")

    queue.dispatcher.dispatch.side_effect = dispatch
    queue.enqueue(first)
    queue.enqueue(second)

    await queue.process_queue()

    first.reply.assert_awaited_once_with(PROCESSING_ERROR_REPLY)
    second.reply.assert_not_awaited()
    assert queue.dispatcher.dispatch.await_count == 2
    assert queue.stats["processed"] == 2


@pytest.mark.asyncio
async def test_media_link_skips_ai(make_message):
    ai_reply = AsyncMock()
    queue = build_queue(ai_enabled=True, ai_reply=ai_reply, media_outcome=ExtractionOutcome(url="https://vimeo.com/1"))
    message = make_message("https://vimeo.com/1")

    await queue.process_message(message)

    ai_reply.assert_not_awaited()
    message.chat.clear_state.assert_awaited()


@pytest.mark.asyncio
async def test_ai_disabled_means_silence(make_message):
    ai_reply = AsyncMock()
    queue = build_queue(ai_enabled=False, ai_reply=ai_reply)
    message = make_message("hello")

    await queue.process_message(message)

    ai_reply.assert_not_awaited()
    message.chat.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_ai_turn_replies_and_records_history(make_message):
    ai_reply = AsyncMock(return_value=AIReply(text="hey there"))
    queue = build_queue(ai_enabled=True, ai_reply=ai_reply)
    message = make_message("hello", author_id="7")

    await queue.process_message(message)

    ai_reply.assert_awaited_once_with("hello", [])
    message.chat.send_typing.assert_awaited()
    message.chat.send_message.assert_awaited_once_with("hey there")
    assert queue.sessions.history("7") == [
        {"role": "user", "text": "hello"},
        {"role": "model", "text": "hey there"},
    ]


@pytest.mark.asyncio
async def test_terminate_ends_session(make_message):
    queue = build_queue(ai_enabled=True, ai_reply=AsyncMock(return_value=AIReply(text="bye", terminate=True)))
    queue.sessions.record_turn("7", "hi", "hey")
    message = make_message("thanks", author_id="7")

    await queue.process_message(message)

    message.chat.send_message.assert_awaited_once_with(FAREWELL_REPLY)
    assert not queue.sessions.is_active("7")


@pytest.mark.asyncio
async def test_ai_command_is_dispatched(make_message):
    queue = build_queue(ai_enabled=True, ai_reply=AsyncMock(return_value=AIReply(text="on it", command="!img horse")))
    message = make_message("get me a horse")

    await queue.process_message(message)

    queue.dispatcher.dispatch.assert_awaited_once_with(message, message.chat, command_line="!img horse")


@pytest.mark.asyncio
async def test_ai_command_ignored_when_disabled(make_message):
    queue = build_queue(
        ai_enabled=True,
        ai_reply=AsyncMock(return_value=AIReply(text="on it", command="!img horse")),
        run_ai_commands=False,
    )

    await queue.process_message(make_message("get me a horse"))

    queue.dispatcher.dispatch.assert_not_awaited()


@pytest.mark.asyncio
async def test_ai_failure_sends_generic_error(make_message):
    queue = build_queue(ai_enabled=True, ai_reply=AsyncMock(side_effect=InferenceError("bad json")))
    message = make_message("hello")

    await queue.process_message(message)

    message.reply.assert_awaited_once_with(PROCESSING_ERROR_REPLY)
    message.chat.clear_state.assert_awaited()


@pytest.mark.asyncio
async def test_voice_mirror_runs_before_ai(make_message):
    mirror = MagicMock()
    mirror.maybe_voice = AsyncMock(return_value=True)
    queue = build_queue(voice_mirror=mirror)
    message = make_message("a long message")

    await queue.process_message(message)

    mirror.maybe_voice.assert_awaited_once_with(message)


@pytest.mark.asyncio
async def test_background_loop_drains_and_stops(make_message):
    queue = build_queue(processing_interval=0.01)
    queue.enqueue(make_message("!a"))

    queue.start()
    for _ in range(100):
        if queue.dispatcher.dispatch.await_count:
            break
        await asyncio.sleep(0.01)
    await queue.stop()

    assert queue.dispatcher.dispatch.await_count == 1


@pytest.mark.asyncio
async def test_mirror_only_message_reaches_only_the_voice_mirror(make_message):
    mirror = MagicMock()
    mirror.maybe_voice = AsyncMock(return_value=False)
    ai_reply = AsyncMock()
    queue = build_queue(ai_enabled=True, ai_reply=ai_reply, voice_mirror=mirror)
    message = make_message("!help", author_name="StreamBot", mirror_only=True)

    await queue.process_message(message)

    mirror.maybe_voice.assert_awaited_once_with(message)
    queue.dispatcher.dispatch.assert_not_awaited()
    queue.media_extractor.handle.assert_not_awaited()
    ai_reply.assert_not_awaited()
    message.chat.clear_state.assert_awaited()


@pytest.mark.asyncio
async def test_enqueue_during_a_drain_waits_its_turn(make_message):
    queue = build_queue()
    order = []
    release = asyncio.Event()

    async def dispatch(message, chat):
        if message.body == "!first":
            await release.wait()
        order.append(message.body)

    queue.dispatcher.dispatch.side_effect = dispatch
    queue.enqueue(make_message("!first"))
    drain = asyncio.create_task(queue.process_queue())
    await asyncio.sleep(0)

    assert queue.enqueue(make_message("!second")) is True
    assert order == []
    assert len(queue) == 1

    release.set()
    assert await drain == 2
    assert order == ["!first", "!second"]


@pytest.mark.asyncio
async def test_background_loop_prunes_expired_sessions(make_message):
    queue = build_queue(processing_interval=0.01)
    queue.sessions = SessionStore(ttl_seconds=60)
    queue.sessions.record_turn("7", "hi", "hey")
    queue.sessions._sessions["7"].last_active -= 120

    queue.start()
    for _ in range(100):
        if not len(queue.sessions):
            break
        await asyncio.sleep(0.01)
    await queue.stop()

    assert len(queue.sessions) == 0
