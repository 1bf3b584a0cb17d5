"""
Shared pieces for command handlers.
"""

import abc
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List

from ..media.client import MediaDownloader
from ..store import CommandStore
from ..transport import InboundMessage, MediaPayload, Transport

ADMIN_ONLY_REPLY = "This command is restricted to admins."


@dataclass
class CommandContext:
    """Collaborators handed to every handler."""

    store: CommandStore
    transport: Transport
    downloader: MediaDownloader
    config: Dict[str, Any]
    synthesize_speech: Callable[[str], Awaitable[MediaPayload]]
    generate_image: Callable[[str], Awaitable[MediaPayload]]

    @property
    def prefix(self) -> str:
        return self.config.get("COMMAND_PREFIX", "!")

    def is_admin(self, message: InboundMessage) -> bool:
        return str(message.author_id) in set(self.config.get("ADMIN_IDS", []))


class CommandHandler(abc.ABC):
    """One command. ``execute`` performs the side effects; raising means failure."""

    name: str = ""
    description: str = ""
    admin_only: bool = False

    def __init__(self, ctx: CommandContext):
        self.ctx = ctx

    async def __call__(self, message: InboundMessage, args: List[str]) -> None:
        if self.admin_only and not self.ctx.is_admin(message):
            await message.reply(ADMIN_ONLY_REPLY)
            return
        await self.execute(message, args)

    @abc.abstractmethod
    async def execute(self, message: InboundMessage, args: List[str]) -> None:  # pragma: no cover
        raise NotImplementedError
