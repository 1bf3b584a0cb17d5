"""
Logging setup: a Rich console sink for humans and a JSONL sink for machines.

Pipeline code logs through ``get_logger(__name__)`` and tags records with
``extra={"subsys": ..., "event": ...}``; ``message_context`` adds the chat,
user and message ids of the message being processed.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional

from rich.logging import RichHandler

THIRD_PARTY_LOGGERS = ("discord", "httpx", "httpcore", "openai", "aiohttp")
REDACTED = "[REDACTED]"

_LEVEL_ICONS = (
    (logging.ERROR, "✖"),
    (logging.WARNING, "⚠"),
    (logging.INFO, "✔"),
)


class LevelIconFilter(logging.Filter):
    """Prefix console records with a one-character level icon."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.level_icon = next((icon for level, icon in _LEVEL_ICONS if record.levelno >= level), "ℹ")
        return True


class JsonlFormatter(logging.Formatter):
    """One JSON object per line, keys always in the same order, empty keys dropped."""

    KEYS = ("ts", "level", "name", "subsys", "chat_id", "user_id", "msg_id", "event", "detail")

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).astimezone()

        detail: Any = getattr(record, "detail", None)
        if detail is None:
            detail = record.getMessage()
        if record.exc_info and record.exc_info[0] is not None:
            last_line = self.formatException(record.exc_info).splitlines()[-1]
            detail = f"{detail} | {last_line}"

        values = {
            "ts": ts.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3],
            "level": record.levelname,
            "name": record.name,
            "detail": detail,
        }
        for key in ("subsys", "chat_id", "user_id", "msg_id", "event"):
            values[key] = getattr(record, key, None)

        return json.dumps({k: values[k] for k in self.KEYS if values.get(k) is not None}, ensure_ascii=False)


class SensitiveDataFilter(logging.Filter):
    """Redact credentials passed in structured extras (nested dicts included)."""

    SECRET_KEYS = frozenset({
        "discord_token",
        "openai_api_key",
        "extraction_api_key",
        "authorization",
        "api_key",
        "token",
    })

    def filter(self, record: logging.LogRecord) -> bool:
        for value in list(record.__dict__.values()):
            if isinstance(value, dict):
                self._scrub(value)
        return True

    def _scrub(self, obj: Dict[str, Any]) -> None:
        for key, value in obj.items():
            if isinstance(value, dict):
                self._scrub(value)
            elif isinstance(value, str) and str(key).lower() in self.SECRET_KEYS:
                obj[key] = REDACTED


def message_context(message: Any, chat: Optional[Any] = None) -> Dict[str, Optional[str]]:
    """Log extras identifying an inbound message; missing attributes become None."""
    return {
        "chat_id": getattr(chat, "id", None) if chat is not None else None,
        "user_id": getattr(message, "author_id", None),
        "msg_id": getattr(message, "id", None),
    }


def init_logging() -> None:
    """Install the console and JSONL sinks on the root logger (replacing any others)."""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    jsonl_path = Path(os.getenv("LOG_JSONL_PATH", "logs/bot.jsonl"))
    jsonl_path.parent.mkdir(parents=True, exist_ok=True)

    console = RichHandler(rich_tracebacks=True, show_path=False, log_time_format="%Y-%m-%d %H:%M:%S")
    console.set_name("console")
    console.addFilter(LevelIconFilter())
    console.setFormatter(logging.Formatter("%(level_icon)s %(message)s"))

    jsonl = logging.FileHandler(jsonl_path, encoding="utf-8")
    jsonl.set_name("jsonl")
    jsonl.setFormatter(JsonlFormatter())

    for handler in (console, jsonl):
        handler.addFilter(SensitiveDataFilter())

    logging.basicConfig(handlers=[console, jsonl], level=level, force=True)

    third_party_level = os.getenv("THIRD_PARTY_LOG_LEVEL", "WARNING").upper()
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    logging.getLogger(__name__).info(
        f"✔ Logging initialized (level={level}, jsonl={jsonl_path})", extra={"subsys": "logging"}
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def shutdown_logging_and_exit(exit_code: int) -> NoReturn:
    """Flush every handler, then exit the process with ``exit_code``."""
    logging.getLogger(__name__).info(f"Shutting down (exit code {exit_code})", extra={"subsys": "logging"})
    logging.shutdown()
    sys.exit(exit_code)
