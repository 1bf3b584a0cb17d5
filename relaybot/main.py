"""
Startup for relaybot: load config, wire the queue to a Discord client, connect.

Component behaviour lives in the modules wired here; this file only builds
and connects them.
"""
import asyncio
import sys
from typing import Any, Dict, NoReturn

import aiohttp
import discord

from .ai_backend import build_client, generate_ai_reply, generate_image, synthesize_speech
from .commands import CommandContext, HANDLER_CLASSES, build_handlers
from .config import load_config, validate_required_env
from .discord_transport import RelayClient, create_intents
from .dispatcher import CommandDispatcher
from .exceptions import ConfigurationError
from .media import build_media_extractor, create_http_client
from .media.client import MediaDownloader
from .presence import PresenceManager
from .scheduler import MessageQueue
from .sessions import SessionStore
from .store import CommandStore
from .tts import VoiceMirror
from .utils.logging import get_logger, init_logging, shutdown_logging_and_exit

MAX_CONNECT_ATTEMPTS = 3
CONNECT_BASE_DELAY_S = 5


async def build_client_stack(config: Dict[str, Any]):
    """Wire every component around one Discord client; returns (client, http)."""
    client = RelayClient(intents=create_intents(), mirror_senders=config["VOICE_MIRROR_SENDERS"])
    http = create_http_client(config)
    ai = build_client(config)

    async def _reply(text, history):
        return await generate_ai_reply(text, history, config=config, client=ai)

    async def _speech(text):
        return await synthesize_speech(text, config=config, client=ai)

    async def _image(prompt):
        return await generate_image(prompt, config=config, client=ai)

    presence = PresenceManager()
    store = CommandStore(config["COMMAND_STORE_PATH"])
    await store.ensure_commands(HANDLER_CLASSES)

    ctx = CommandContext(
        store=store,
        transport=client,
        downloader=MediaDownloader(http, config),
        config=config,
        synthesize_speech=_speech,
        generate_image=_image,
    )
    dispatcher = CommandDispatcher(store, presence, build_handlers(ctx), sigil=config["COMMAND_PREFIX"])

    client.message_queue = MessageQueue(
        dispatcher=dispatcher,
        media_extractor=build_media_extractor(config, presence, http),
        store=store,
        sessions=SessionStore(
            ttl_seconds=config["SESSION_TTL_S"],
            max_turns=config["SESSION_MAX_TURNS"],
            max_users=config["SESSION_MAX_USERS"],
        ),
        presence=presence,
        ai_reply=_reply,
        voice_mirror=VoiceMirror.from_config(config, _speech, presence),
        processing_interval=config["QUEUE_INTERVAL_MS"] / 1000.0,
        run_ai_commands=config["AI_RUN_COMMANDS"],
    )
    return client, http


async def main() -> NoReturn:
    init_logging()
    logger = get_logger(__name__)

    try:
        validate_required_env()
        config = load_config()
    except ConfigurationError as e:
        logger.critical(f"Configuration error during startup: {e}")
        shutdown_logging_and_exit(1)

    client, http = await build_client_stack(config)

    try:
        for attempt in range(MAX_CONNECT_ATTEMPTS):
            try:
                logger.info(f"Connecting to Discord... (Attempt {attempt + 1}/{MAX_CONNECT_ATTEMPTS})")
                await client.start(config["DISCORD_TOKEN"])
                break
            except discord.LoginFailure:
                logger.error("Failed to log in. Please check your Discord token.")
                shutdown_logging_and_exit(1)
            except (discord.HTTPException, aiohttp.ClientConnectorError):
                if attempt == MAX_CONNECT_ATTEMPTS - 1:
                    logger.error("Could not connect to Discord, giving up.")
                    shutdown_logging_and_exit(1)
                delay = CONNECT_BASE_DELAY_S * (2 ** attempt)
                logger.warning(f"Connection failed, retrying in {delay}s...")
                await asyncio.sleep(delay)
    finally:
        await http.aclose()

    logger.info("Client loop exited.")
    shutdown_logging_and_exit(0)


def run_bot() -> None:
    """Console script: run ``main`` and map interrupts and crashes to an exit code."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nBot shutdown requested by user.")
        shutdown_logging_and_exit(0)
    except Exception as e:
        print(f"FATAL ERROR: {e}", file=sys.stderr)
        shutdown_logging_and_exit(1)


if __name__ == "__main__":
    run_bot()
