"""
Tests for the command handlers.
"""
import json
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from relaybot.commands import CommandContext, HANDLER_CLASSES, build_handlers
from relaybot.commands.base import ADMIN_ONLY_REPLY
from relaybot.media.models import DownloadedMedia
from relaybot.store import CommandStore
from relaybot.transport import MediaPayload

ADMIN_ID = "1"


@pytest_asyncio.fixture
async def ctx(tmp_path):
    store = CommandStore(tmp_path / "commands.json")
    await store.ensure_commands(HANDLER_CLASSES)
    transport = AsyncMock()
    downloader = AsyncMock()
    return CommandContext(
        store=store,
        transport=transport,
        downloader=downloader,
        config={
            "COMMAND_PREFIX": "!",
            "ADMIN_IDS": [ADMIN_ID],
            "LOG_JSONL_PATH": tmp_path / "bot.jsonl",
            "LOGS_TAIL_LINES": 20,
        },
        synthesize_speech=AsyncMock(return_value=MediaPayload("audio/mpeg", b"ID3", "speech.mp3")),
        generate_image=AsyncMock(return_value=MediaPayload("image/png", b"PNG", "image.png")),
    )


@pytest.fixture
def handlers(ctx):
    return build_handlers(ctx)


def test_every_registered_name_has_a_handler(handlers):
    assert set(handlers) == {"help", "toggleai", "togglecmd", "logs", "pfp", "speak", "img", "msg"}
    assert all(handler.name == name for name, handler in handlers.items())


@pytest.mark.asyncio
async def test_help_lists_enabled_commands(handlers, ctx, make_message):
    await ctx.store.record_usage("img")
    await ctx.store.set_enabled("pfp", False)
    message = make_message("!help")

    await handlers["help"](message, [])

    text = message.reply.await_args.args[0]
    assert text.startswith("*Available commands*")
    assert "!img (used 1x)" in text
    assert "!help (used 0x)" in text
    assert "!pfp" not in text


@pytest.mark.asyncio
async def test_help_with_nothing_enabled(handlers, ctx, make_message):
    for name in HANDLER_CLASSES:
        await ctx.store.set_enabled(name, False)
    message = make_message("!help")

    await handlers["help"](message, [])

    message.reply.assert_awaited_once_with("No commands are currently enabled.")


@pytest.mark.asyncio
async def test_toggleai_flips_setting(handlers, ctx, make_message):
    message = make_message("!toggleai")

    await handlers["toggleai"](message, [])
    assert await ctx.store.is_ai_enabled() is True
    message.reply.assert_awaited_with("AI auto-reply is now enabled.")

    await handlers["toggleai"](message, [])
    assert await ctx.store.is_ai_enabled() is False
    message.reply.assert_awaited_with("AI auto-reply is now disabled.")


@pytest.mark.asyncio
async def test_togglecmd_requires_admin(handlers, ctx, make_message):
    message = make_message("!togglecmd img", author_id="999")

    await handlers["togglecmd"](message, ["img"])

    message.reply.assert_awaited_once_with(ADMIN_ONLY_REPLY)
    assert (await ctx.store.get_command("img")).enabled is True


@pytest.mark.asyncio
async def test_togglecmd_toggles(handlers, ctx, make_message):
    message = make_message("!togglecmd img", author_id=ADMIN_ID)

    await handlers["togglecmd"](message, ["IMG"])
    assert (await ctx.store.get_command("img")).enabled is False
    message.reply.assert_awaited_with("Command img is now disabled.")

    await handlers["togglecmd"](message, ["!img"])
    assert (await ctx.store.get_command("img")).enabled is True
    message.reply.assert_awaited_with("Command img is now enabled.")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "args,reply",
    [
        ([], "Usage: !togglecmd <command>"),
        (["help"], "The help command cannot be disabled."),
        (["togglecmd"], "The togglecmd command cannot be disabled."),
        (["dance"], "Unknown command: dance"),
    ],
)
async def test_togglecmd_refusals(handlers, make_message, args, reply):
    message = make_message("!togglecmd", author_id=ADMIN_ID)

    await handlers["togglecmd"](message, args)

    message.reply.assert_awaited_once_with(reply)


@pytest.mark.asyncio
async def test_msg_relays_text(handlers, ctx, make_message):
    message = make_message("!msg 42 hello there", author_id=ADMIN_ID)

    await handlers["msg"](message, ["42", "hello", "there"])

    ctx.transport.send_to.assert_awaited_once_with("42", "hello there")
    message.reply.assert_awaited_once_with("Message sent.")


@pytest.mark.asyncio
async def test_msg_usage(handlers, ctx, make_message):
    message = make_message("!msg 42", author_id=ADMIN_ID)

    await handlers["msg"](message, ["42"])

    ctx.transport.send_to.assert_not_awaited()
    message.reply.assert_awaited_once_with("Usage: !msg <target> <message>")


@pytest.mark.asyncio
async def test_pfp_for_quoted_author(handlers, ctx, make_message):
    ctx.transport.get_profile_picture_url.return_value = "https://cdn.test/avatar.png"
    ctx.downloader.download.return_value = DownloadedMedia("image/png", b"PNG")
    message = make_message("!pfp", quoted=make_message("hi", author_id="55"))

    await handlers["pfp"](message, [])

    ctx.transport.get_profile_picture_url.assert_awaited_once_with("55")
    ctx.downloader.download.assert_awaited_once_with("https://cdn.test/avatar.png")
    assert message.reply.await_args.args[0].data == b"PNG"


@pytest.mark.asyncio
async def test_pfp_without_picture(handlers, ctx, make_message):
    ctx.transport.get_profile_picture_url.return_value = None
    message = make_message("!pfp 55")

    await handlers["pfp"](message, ["55"])

    message.reply.assert_awaited_once_with("No profile picture found.")
    ctx.downloader.download.assert_not_awaited()


@pytest.mark.asyncio
async def test_pfp_usage(handlers, make_message):
    message = make_message("!pfp")

    await handlers["pfp"](message, [])

    message.reply.assert_awaited_once_with("Usage: !pfp <user> or reply to a message")


@pytest.mark.asyncio
async def test_speak_sends_voice_note(handlers, ctx, make_message):
    message = make_message("!speak", quoted=make_message("  read me out loud  "))

    await handlers["speak"](message, [])

    ctx.synthesize_speech.assert_awaited_once_with("read me out loud")
    payload = message.reply.await_args.args[0]
    assert payload.mimetype == "audio/mpeg"
    assert message.reply.await_args.kwargs == {"send_audio_as_voice": True}


@pytest.mark.asyncio
async def test_speak_needs_quoted_text(handlers, ctx, make_message):
    message = make_message("!speak")

    await handlers["speak"](message, [])

    ctx.synthesize_speech.assert_not_awaited()
    message.reply.assert_awaited_once_with("Reply to a text message with !speak")


@pytest.mark.asyncio
async def test_img_generates_from_prompt(handlers, ctx, make_message):
    message = make_message("!img a red horse")

    await handlers["img"](message, ["a", "red", "horse"])

    ctx.generate_image.assert_awaited_once_with("a red horse")
    assert message.reply.await_args.args[0].mimetype == "image/png"


@pytest.mark.asyncio
async def test_img_usage(handlers, ctx, make_message):
    message = make_message("!img")

    await handlers["img"](message, [])

    ctx.generate_image.assert_not_awaited()
    message.reply.assert_awaited_once_with("Usage: !img <prompt>")


@pytest.mark.asyncio
async def test_logs_tails_jsonl(handlers, ctx, make_message):
    lines = [
        json.dumps({"ts": f"2024-01-01 00:00:0{n}", "level": "INFO", "name": "relaybot", "detail": f"line {n}"})
        for n in range(5)
    ]
    ctx.config["LOG_JSONL_PATH"].write_text("\n".join(lines) + "\n")
    message = make_message("!logs 2", author_id=ADMIN_ID)

    await handlers["logs"](message, ["2"])

    text = message.reply.await_args.args[0]
    assert text.splitlines() == [
        "[2024-01-01 00:00:03] INFO relaybot: line 3",
        "[2024-01-01 00:00:04] INFO relaybot: line 4",
    ]


@pytest.mark.asyncio
async def test_logs_without_file(handlers, make_message):
    message = make_message("!logs", author_id=ADMIN_ID)

    await handlers["logs"](message, [])

    message.reply.assert_awaited_once_with("No logs available yet.")
