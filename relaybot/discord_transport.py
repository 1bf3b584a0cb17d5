"""
Discord implementation of the transport protocols.

Wraps ``discord.Message`` / messageable channels so the pipeline never sees
discord.py types, and translates library errors into TransportError with a
transient flag the retry predicates understand.
"""
import asyncio
import io
import re
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional

import aiohttp
import discord

from .exceptions import TransportError
from .transport import Content, MediaPayload
from .utils.logging import get_logger

if TYPE_CHECKING:
    from .scheduler import MessageQueue

logger = get_logger(__name__)

MENTION_PATTERN = re.compile(r"^<[@#][!&]?(\d+)>$")
DISCORD_MESSAGE_LIMIT = 2000


def _snowflake(target: str) -> int:
    """Accept raw ids as well as ``<@id>`` / ``<#id>`` mentions."""
    target = target.strip()
    match = MENTION_PATTERN.match(target)
    raw = match.group(1) if match else target
    try:
        return int(raw)
    except ValueError as e:
        raise TransportError(f"Not a valid Discord id: {target!r}") from e


def _send_kwargs(content: Content, send_audio_as_voice: bool) -> Dict[str, Any]:
    if isinstance(content, MediaPayload):
        if send_audio_as_voice:
            # Native voice notes need an OGG/Opus upload flow; audio goes out as an attachment
            logger.debug("Voice note requested, sending audio as attachment", extra={"subsys": "discord"})
        return {"file": discord.File(io.BytesIO(content.data), filename=content.resolved_filename())}
    return {"content": content[:DISCORD_MESSAGE_LIMIT]}


async def _guarded(coro) -> Any:
    try:
        return await coro
    except discord.DiscordServerError as e:
        raise TransportError(f"Discord server error: {e}", transient=True) from e
    except discord.HTTPException as e:
        raise TransportError(f"Discord rejected the request: {e}") from e
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise TransportError(f"Network error talking to Discord: {e}", transient=True) from e


class DiscordChat:
    """A Discord channel seen as a chat."""

    def __init__(self, channel: discord.abc.Messageable):
        self._channel = channel
        self.id = str(getattr(channel, "id", ""))

    async def send_typing(self) -> None:
        await _guarded(self._channel.typing())

    async def send_recording(self) -> None:
        # Discord has no recording indicator
        await _guarded(self._channel.typing())

    async def clear_state(self) -> None:
        # Typing indicators expire on their own after a few seconds
        return None

    async def send_message(self, content: Content, *, send_audio_as_voice: bool = False) -> None:
        await _guarded(self._channel.send(**_send_kwargs(content, send_audio_as_voice)))


class DiscordInboundMessage:
    """A received ``discord.Message`` seen through the InboundMessage protocol."""

    def __init__(self, message: discord.Message, mirror_only: bool = False):
        self._message = message
        self.mirror_only = mirror_only
        self.body = message.content or ""
        self.author_id = str(message.author.id)
        self.author_name = message.author.display_name
        self.has_quoted_msg = message.reference is not None
        self.id = str(message.id)

    async def get_chat(self) -> DiscordChat:
        return DiscordChat(self._message.channel)

    async def get_quoted_message(self) -> Optional["DiscordInboundMessage"]:
        reference = self._message.reference
        if reference is None:
            return None
        resolved = reference.resolved
        if isinstance(resolved, discord.Message):
            return DiscordInboundMessage(resolved)
        if reference.message_id is None:
            return None
        try:
            fetched = await self._message.channel.fetch_message(reference.message_id)
        except (discord.NotFound, discord.Forbidden):
            return None
        return DiscordInboundMessage(fetched)

    async def refresh(self) -> str:
        """Re-fetch the message so edits made since it arrived are visible."""
        latest = await _guarded(self._message.channel.fetch_message(self._message.id))
        self._message = latest
        self.body = latest.content or ""
        return self.body

    async def reply(self, content: Content, *, send_audio_as_voice: bool = False) -> None:
        await _guarded(
            self._message.reply(mention_author=False, **_send_kwargs(content, send_audio_as_voice))
        )


class RelayClient(discord.Client):
    """Discord client feeding inbound messages into the message queue."""

    def __init__(self, *args, mirror_senders: Iterable[str] = (), **kwargs):
        super().__init__(*args, **kwargs)
        self.message_queue: Optional["MessageQueue"] = None
        self.mirror_senders = {name.casefold() for name in mirror_senders}

    async def setup_hook(self) -> None:
        if self.message_queue is not None:
            self.message_queue.start()

    async def on_ready(self) -> None:
        logger.info(f"✅ Connected to Discord as {self.user}", extra={"subsys": "discord", "event": "ready"})

    async def on_message(self, message: discord.Message) -> None:
        if self.message_queue is None or message.author == self.user:
            return
        if message.author.bot:
            # Other bots only reach the voice mirror, and only when listed
            if message.author.display_name.casefold() in self.mirror_senders:
                self.message_queue.enqueue(DiscordInboundMessage(message, mirror_only=True))
            return
        self.message_queue.enqueue(DiscordInboundMessage(message))

    async def close(self) -> None:
        if self.message_queue is not None:
            await self.message_queue.stop()
        await super().close()

    async def send_to(self, target: str, content: Content) -> None:
        snowflake = _snowflake(target)
        destination = self.get_channel(snowflake) or self.get_user(snowflake)
        if destination is None:
            destination = await _guarded(self.fetch_user(snowflake))
        await _guarded(destination.send(**_send_kwargs(content, False)))

    async def get_profile_picture_url(self, target: str) -> Optional[str]:
        try:
            user = await _guarded(self.fetch_user(_snowflake(target)))
        except TransportError as e:
            logger.warning(f"⚠️ Could not resolve user {target}: {e}", extra={"subsys": "discord"})
            return None
        return str(user.display_avatar.url)


def create_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.message_content = True
    return intents
