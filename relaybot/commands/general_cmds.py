"""
General commands: help and cross-chat messaging.
"""
from typing import List

from ..transport import InboundMessage
from ..utils.logging import get_logger
from .base import CommandHandler

logger = get_logger(__name__)


class HelpCommand(CommandHandler):
    name = "help"
    description = "Show available commands"

    async def execute(self, message: InboundMessage, args: List[str]) -> None:
        records = await self.ctx.store.list_commands()
        enabled = [r for r in records if r.enabled]
        if not enabled:
            await message.reply("No commands are currently enabled.")
            return

        lines = ["*Available commands*"]
        for record in enabled:
            lines.append(f"{self.ctx.prefix}{record.name} (used {record.usage_count}x)")
        await message.reply("\n".join(lines))


class MsgCommand(CommandHandler):
    """Send a message to another chat: ``msg <target> <text...>``."""

    name = "msg"
    description = "Send a message to another chat"
    admin_only = True

    async def execute(self, message: InboundMessage, args: List[str]) -> None:
        if len(args) < 2:
            await message.reply(f"Usage: {self.ctx.prefix}msg <target> <message>")
            return

        target, text = args[0], " ".join(args[1:])
        await self.ctx.transport.send_to(target, text)
        logger.info(f"📨 Relayed message to {target}", extra={"subsys": "commands", "event": "msg.sent"})
        await message.reply("Message sent.")
