from unittest.mock import AsyncMock

import pytest

from relaybot.presence import PresenceManager
from relaybot.transport import MediaPayload
from relaybot.tts import VoiceMirror

AUDIO = MediaPayload("audio/mpeg", b"ID3", "speech.mp3")


def build_mirror(**kwargs):
    kwargs.setdefault("settle_interval", 0)
    return VoiceMirror(AsyncMock(return_value=AUDIO), PresenceManager(), **kwargs)


@pytest.mark.asyncio
async def test_long_message_from_listed_sender_is_voiced(make_message):
    mirror = build_mirror(senders=["Ana"], min_length=10)
    message = make_message("x" * 10, author_name="ana")

    assert await mirror.maybe_voice(message) is True

    mirror.synthesize.assert_awaited_once_with("x" * 10)
    message.reply.assert_awaited_once_with(AUDIO, send_audio_as_voice=True)
    message.chat.send_recording.assert_awaited_once()


@pytest.mark.parametrize(
    "senders,name,body",
    [
        ([], "Ana", "x" * 50),
        (["Ana"], "Bob", "x" * 50),
        (["Ana"], "Ana", "short"),
    ],
)
@pytest.mark.asyncio
async def test_other_messages_are_left_alone(make_message, senders, name, body):
    mirror = build_mirror(senders=senders, min_length=10)
    message = make_message(body, author_name=name)

    assert await mirror.maybe_voice(message) is False
    mirror.synthesize.assert_not_awaited()


@pytest.mark.asyncio
async def test_synthesis_failure_is_contained(make_message):
    mirror = build_mirror(senders=["Ana"], min_length=1)
    mirror.synthesize.side_effect = RuntimeError("tts down")
    message = make_message("hello", author_name="Ana")

    assert await mirror.maybe_voice(message) is False
    message.reply.assert_not_awaited()


@pytest.mark.asyncio
async def test_streamed_message_is_voiced_once_it_stops_changing(make_message):
    final = "finished answer " * 3
    mirror = build_mirror(senders=["StreamBot"], min_length=20)
    message = make_message("fini", author_name="StreamBot")
    message.refresh = AsyncMock(side_effect=["fini", "finished ans", final, final])

    assert await mirror.maybe_voice(message) is True

    mirror.synthesize.assert_awaited_once_with(final)
    assert message.refresh.await_count == 4


@pytest.mark.asyncio
async def test_text_still_short_after_settling_is_not_voiced(make_message):
    mirror = build_mirror(senders=["StreamBot"], min_length=20)
    message = make_message("ok", author_name="StreamBot")
    message.refresh = AsyncMock(side_effect=["ok", "ok"])

    assert await mirror.maybe_voice(message) is False
    mirror.synthesize.assert_not_awaited()


@pytest.mark.asyncio
async def test_settling_gives_up_after_the_attempt_limit(make_message):
    mirror = build_mirror(senders=["StreamBot"], min_length=1, settle_attempts=3)
    message = make_message("a", author_name="StreamBot")
    message.refresh = AsyncMock(side_effect=["a", "ab", "abc", "abcd"])

    assert await mirror.maybe_voice(message) is True

    mirror.synthesize.assert_awaited_once_with("abcd")
    assert message.refresh.await_count == 4

def test_from_config():
    mirror = VoiceMirror.from_config(
        {"VOICE_MIRROR_SENDERS": ["Ana", "Bob"], "VOICE_MIRROR_MIN_LENGTH": 5},
        AsyncMock(),
        PresenceManager(),
    )
    assert mirror.senders == {"ana", "bob"}
    assert mirror.min_length == 5
