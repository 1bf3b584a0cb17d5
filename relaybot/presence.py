"""
Best-effort chat presence indicators (typing / recording / cleared).

Presence is cosmetic: every call logs its own failure and returns normally.
"""

from .transport import Chat
from .utils.logging import get_logger

logger = get_logger(__name__)


class PresenceManager:
    """Sets and clears the activity indicator shown to the remote party."""

    async def set_typing(self, chat: Chat) -> None:
        try:
            await chat.send_typing()
        except Exception as e:
            logger.error(
                f"❌ Failed to set typing state: {e}",
                extra={"subsys": "presence", "event": "typing.failed", "chat_id": getattr(chat, "id", None)},
            )

    async def set_recording(self, chat: Chat) -> None:
        try:
            await chat.send_recording()
        except Exception as e:
            logger.error(
                f"❌ Failed to set recording state: {e}",
                extra={"subsys": "presence", "event": "recording.failed", "chat_id": getattr(chat, "id", None)},
            )

    async def clear(self, chat: Chat) -> None:
        try:
            await chat.clear_state()
        except Exception as e:
            logger.error(
                f"❌ Failed to clear chat state: {e}",
                extra={"subsys": "presence", "event": "clear.failed", "chat_id": getattr(chat, "id", None)},
            )
