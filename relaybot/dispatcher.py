"""
Parses command lines, gates them against the command registry and runs the
matching handler with presence feedback and usage accounting.
"""
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Mapping, Optional

from .presence import PresenceManager
from .store import CommandStore
from .transport import Chat, InboundMessage
from .utils.logging import get_logger, message_context

logger = get_logger(__name__)

COMMAND_SIGIL = "!"

# Commands that answer with audio show "recording" instead of "typing"
AUDIO_COMMANDS = frozenset({"speak"})

UNKNOWN_COMMAND_REPLY = "Unknown command. Use {sigil}help to see available commands."
DISABLED_COMMAND_REPLY = "This command is currently disabled."
NOT_IMPLEMENTED_REPLY = "This command is not implemented yet."
COMMAND_FAILED_REPLY = "Error executing command. Please try again later."

Handler = Callable[[InboundMessage, List[str]], Awaitable[None]]


@dataclass
class ParsedCommand:
    """A command name (lower-cased) and its positional arguments."""

    name: str
    args: List[str] = field(default_factory=list)


def is_command(body: Optional[str], sigil: str = COMMAND_SIGIL) -> bool:
    return bool(body) and body.startswith(sigil)


def parse_command_line(line: str, sigil: str = COMMAND_SIGIL) -> ParsedCommand:
    """Split ``!name arg1 arg2`` on whitespace; the sigil is optional."""
    if line.startswith(sigil):
        line = line[len(sigil):]
    tokens = line.split()
    if not tokens:
        return ParsedCommand(name="")
    return ParsedCommand(name=tokens[0].lower(), args=tokens[1:])


def command_will_respond(name: str, args: List[str], has_quoted_msg: bool) -> bool:
    """Whether running ``name`` is expected to produce a visible answer."""
    if name in ("help", "toggleai", "togglecmd", "logs"):
        return True
    if name == "pfp":
        return len(args) > 0 or has_quoted_msg
    if name == "speak":
        return has_quoted_msg
    if name == "img":
        return len(args) > 0
    if name == "msg":
        return len(args) >= 2
    return False


class CommandDispatcher:
    """Runs one command line end to end."""

    def __init__(
        self,
        store: CommandStore,
        presence: PresenceManager,
        handlers: Mapping[str, Handler],
        sigil: str = COMMAND_SIGIL,
    ):
        self.store = store
        self.presence = presence
        self.handlers = handlers
        self.sigil = sigil

    async def _safe_reply(self, message: InboundMessage, text: str) -> None:
        try:
            await message.reply(text)
        except Exception as e:
            logger.error(f"❌ Could not send command failure reply: {e}", extra={"subsys": "dispatcher"})

    async def dispatch(
        self, message: InboundMessage, chat: Chat, command_line: Optional[str] = None
    ) -> bool:
        """
        Execute the command in ``command_line`` (default: the message body).

        Returns True when a handler ran to completion. Failures are logged and
        answered with a generic reply; presence is always cleared at the end.
        """
        parsed = parse_command_line(command_line if command_line is not None else message.body, self.sigil)
        log_extra = {"subsys": "dispatcher", **message_context(message, chat)}

        try:
            record = await self.store.get_command(parsed.name)
            if record is None:
                logger.debug(f"Ignoring unknown command: {parsed.name!r}", extra={**log_extra, "event": "command.unknown"})
                await message.reply(UNKNOWN_COMMAND_REPLY.format(sigil=self.sigil))
                return False
            if not record.enabled:
                logger.debug(f"Command {parsed.name} is disabled", extra={**log_extra, "event": "command.disabled"})
                await message.reply(DISABLED_COMMAND_REPLY)
                return False

            if command_will_respond(parsed.name, parsed.args, message.has_quoted_msg):
                if parsed.name in AUDIO_COMMANDS:
                    await self.presence.set_recording(chat)
                else:
                    await self.presence.set_typing(chat)

            handler = self.handlers.get(parsed.name)
            if handler is None:
                await message.reply(NOT_IMPLEMENTED_REPLY)
                return False

            logger.info(
                f"⚡ Running command {parsed.name} with {len(parsed.args)} args",
                extra={**log_extra, "event": "command.start"},
            )
            await handler(message, parsed.args)
            await self.store.record_usage(parsed.name)
            return True
        except Exception as e:
            logger.error(
                f"❌ Error executing command {parsed.name}: {e}",
                exc_info=True,
                extra={**log_extra, "event": "command.failed"},
            )
            await self._safe_reply(message, COMMAND_FAILED_REPLY)
            return False
        finally:
            await self.presence.clear(chat)
