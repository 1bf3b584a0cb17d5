"""
Voice mirror: reads long messages from selected senders back as voice notes.

Mirrored senders are often bots that stream their answer by editing one
message, so the text is re-read until it stops changing before the length
check and synthesis.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable

from .presence import PresenceManager
from .transport import InboundMessage, MediaPayload
from .utils.logging import get_logger

logger = get_logger(__name__)

SETTLE_ATTEMPTS = 10
SETTLE_INTERVAL_S = 0.5


class VoiceMirror:
    def __init__(
        self,
        synthesize: Callable[[str], Awaitable[MediaPayload]],
        presence: PresenceManager,
        senders: Iterable[str] = (),
        min_length: int = 300,
        settle_attempts: int = SETTLE_ATTEMPTS,
        settle_interval: float = SETTLE_INTERVAL_S,
    ):
        self.synthesize = synthesize
        self.presence = presence
        self.senders = {s.casefold() for s in senders}
        self.min_length = min_length
        self.settle_attempts = settle_attempts
        self.settle_interval = settle_interval

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        synthesize: Callable[[str], Awaitable[MediaPayload]],
        presence: PresenceManager,
    ) -> "VoiceMirror":
        return cls(
            synthesize,
            presence,
            senders=config.get("VOICE_MIRROR_SENDERS", []),
            min_length=config.get("VOICE_MIRROR_MIN_LENGTH", 300),
        )

    def is_mirrored_sender(self, message: InboundMessage) -> bool:
        name = (getattr(message, "author_name", "") or "").casefold()
        return bool(self.senders) and name in self.senders

    async def wait_for_complete_text(self, message: InboundMessage) -> str:
        """Re-read ``message`` until two consecutive reads agree, up to ``settle_attempts`` polls."""
        previous = None
        for _ in range(self.settle_attempts):
            current = await message.refresh()
            if current == previous:
                return current
            previous = current
            await asyncio.sleep(self.settle_interval)
        return await message.refresh()

    async def maybe_voice(self, message: InboundMessage) -> bool:
        """Voice ``message`` if it qualifies; failures are logged, never raised."""
        if not self.is_mirrored_sender(message):
            return False
        try:
            text = await self.wait_for_complete_text(message)
            if len(text or "") < self.min_length:
                return False

            chat = await message.get_chat()
            await self.presence.set_recording(chat)
            audio = await self.synthesize(text)
            await message.reply(audio, send_audio_as_voice=True)
            logger.info("🔊 Mirrored long message as voice note", extra={"subsys": "tts", "event": "voice.mirrored"})
            return True
        except Exception as e:
            logger.error(f"❌ Error generating voice for message: {e}", extra={"subsys": "tts", "event": "voice.failed"})
            return False
