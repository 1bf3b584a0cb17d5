"""
Command handler table.

The set of commands is closed: each name maps to exactly one handler class.
"""
from typing import Dict, Type

from .admin_cmds import LogsCommand, ToggleAICommand, ToggleCmdCommand
from .base import CommandContext, CommandHandler
from .general_cmds import HelpCommand, MsgCommand
from .media_cmds import ImgCommand, PfpCommand, SpeakCommand

HANDLER_CLASSES: Dict[str, Type[CommandHandler]] = {
    "help": HelpCommand,
    "toggleai": ToggleAICommand,
    "togglecmd": ToggleCmdCommand,
    "logs": LogsCommand,
    "pfp": PfpCommand,
    "speak": SpeakCommand,
    "img": ImgCommand,
    "msg": MsgCommand,
}


def build_handlers(ctx: CommandContext) -> Dict[str, CommandHandler]:
    return {name: cls(ctx) for name, cls in HANDLER_CLASSES.items()}


__all__ = ["CommandContext", "CommandHandler", "HANDLER_CLASSES", "build_handlers"]
