"""
Administrative commands: AI auto-reply switch, command toggles and log tail.
"""
import json
from collections import deque
from pathlib import Path
from typing import Deque, List

import aiofiles

from ..store import AI_ENABLED_KEY
from ..transport import InboundMessage
from ..utils.logging import get_logger
from .base import CommandHandler

logger = get_logger(__name__)

# Commands that must stay reachable so nothing can lock the bot out
PROTECTED_COMMANDS = frozenset({"togglecmd", "help"})
MAX_LOG_LINES = 100


class ToggleAICommand(CommandHandler):
    name = "toggleai"
    description = "Turn AI auto-replies on or off"

    async def execute(self, message: InboundMessage, args: List[str]) -> None:
        enabled = not await self.ctx.store.is_ai_enabled()
        await self.ctx.store.set_setting(AI_ENABLED_KEY, enabled)
        logger.info(f"🤖 AI auto-reply {'enabled' if enabled else 'disabled'}", extra={"subsys": "commands", "event": "ai.toggled"})
        await message.reply(f"AI auto-reply is now {'enabled' if enabled else 'disabled'}.")


class ToggleCmdCommand(CommandHandler):
    name = "togglecmd"
    description = "Enable or disable a command"
    admin_only = True

    async def execute(self, message: InboundMessage, args: List[str]) -> None:
        if not args:
            await message.reply(f"Usage: {self.ctx.prefix}togglecmd <command>")
            return

        target = args[0].lower().lstrip(self.ctx.prefix)
        if target in PROTECTED_COMMANDS:
            await message.reply(f"The {target} command cannot be disabled.")
            return

        record = await self.ctx.store.get_command(target)
        if record is None:
            await message.reply(f"Unknown command: {target}")
            return

        await self.ctx.store.set_enabled(target, not record.enabled)
        state = "disabled" if record.enabled else "enabled"
        logger.info(f"🔧 Command {target} {state}", extra={"subsys": "commands", "event": "command.toggled"})
        await message.reply(f"Command {target} is now {state}.")


async def _tail(path: Path, count: int) -> List[str]:
    lines: Deque[str] = deque(maxlen=count)
    async with aiofiles.open(path, "r", encoding="utf-8", errors="replace") as f:
        async for line in f:
            lines.append(line)
    return list(lines)


def _format_log_line(line: str) -> str:
    try:
        entry = json.loads(line)
    except json.JSONDecodeError:
        return line.rstrip()
    return f"[{entry.get('ts', '?')}] {entry.get('level', '?')} {entry.get('name', '')}: {entry.get('detail', '')}"


class LogsCommand(CommandHandler):
    name = "logs"
    description = "Show recent log lines"
    admin_only = True

    async def execute(self, message: InboundMessage, args: List[str]) -> None:
        count = self.ctx.config.get("LOGS_TAIL_LINES", 20)
        if args and args[0].isdigit():
            count = max(1, min(int(args[0]), MAX_LOG_LINES))

        path = Path(self.ctx.config.get("LOG_JSONL_PATH", "logs/bot.jsonl"))
        if not path.exists():
            await message.reply("No logs available yet.")
            return

        lines = await _tail(path, count)
        if not lines:
            await message.reply("No logs available yet.")
            return
        await message.reply("\n".join(_format_log_line(line) for line in lines))
