"""
Command registry and settings persistence.

Commands and boolean settings live in one JSON document. All mutations go
through an asyncio lock, so usage counters are never read-modify-written
across awaits by callers.
"""
import asyncio
import copy
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import aiofiles

from .utils.logging import get_logger

logger = get_logger(__name__)

AI_ENABLED_KEY = "ai_enabled"


@dataclass
class CommandRecord:
    """Stored metadata for one command."""

    name: str
    enabled: bool = True
    usage_count: int = 0
    last_used: Optional[datetime] = None

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "CommandRecord":
        last_used = data.get("last_used")
        return cls(
            name=name,
            enabled=bool(data.get("enabled", True)),
            usage_count=max(0, int(data.get("usage_count", 0))),
            last_used=datetime.fromisoformat(last_used) if last_used else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "usage_count": self.usage_count,
            "last_used": self.last_used.isoformat() if self.last_used else None,
        }


def _empty_document() -> Dict[str, Any]:
    return {"commands": {}, "settings": {}}


class CommandStore:
    """JSON-file backed store for command records and settings.

    Mutations are applied to a copy of the cached document; the cache only
    moves forward once that copy has been written to disk.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._doc: Optional[Dict[str, Any]] = None

    async def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return _empty_document()
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                doc = json.loads(await f.read())
        except json.JSONDecodeError as e:
            backup = self.path.with_suffix(self.path.suffix + ".corrupt")
            logger.error(f"❌ Command store {self.path} is corrupt ({e}); moving it to {backup}")
            self.path.replace(backup)
            return _empty_document()
        doc.setdefault("commands", {})
        doc.setdefault("settings", {})
        return doc

    async def _write(self, doc: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            async with aiofiles.open(temp_file, "w", encoding="utf-8") as f:
                await f.write(json.dumps(doc, indent=2, ensure_ascii=False))
            # Atomic rename
            temp_file.replace(self.path)
        except BaseException:
            if temp_file.exists():
                temp_file.unlink()
            raise

    async def _document(self) -> Dict[str, Any]:
        if self._doc is None:
            self._doc = await self._read()
        return self._doc

    async def _commit(self, doc: Dict[str, Any]) -> None:
        """Persist ``doc`` and only then make it the cached document."""
        await self._write(doc)
        self._doc = doc

    async def ensure_commands(self, names: Iterable[str]) -> List[str]:
        """Create enabled records for any missing command names."""
        async with self._lock:
            doc = copy.deepcopy(await self._document())
            added = [n for n in names if n not in doc["commands"]]
            for name in added:
                doc["commands"][name] = CommandRecord(name).to_dict()
            if added:
                await self._commit(doc)
                logger.info(f"✅ Registered commands: {', '.join(added)}", extra={"subsys": "store"})
            return added

    async def get_command(self, name: str) -> Optional[CommandRecord]:
        async with self._lock:
            doc = await self._document()
            data = doc["commands"].get(name)
            return CommandRecord.from_dict(name, data) if data is not None else None

    async def list_commands(self) -> List[CommandRecord]:
        async with self._lock:
            doc = await self._document()
            return [CommandRecord.from_dict(n, d) for n, d in sorted(doc["commands"].items())]

    async def set_enabled(self, name: str, enabled: bool) -> bool:
        """Returns False when the command is unknown."""
        async with self._lock:
            doc = copy.deepcopy(await self._document())
            if name not in doc["commands"]:
                return False
            doc["commands"][name]["enabled"] = enabled
            await self._commit(doc)
            return True

    async def record_usage(self, name: str, when: Optional[datetime] = None) -> None:
        """Increment the usage counter and stamp last-used."""
        async with self._lock:
            doc = copy.deepcopy(await self._document())
            data = doc["commands"].get(name)
            if data is None:
                logger.warning(f"⚠️ Usage recorded for unknown command '{name}', ignoring")
                return
            data["usage_count"] = int(data.get("usage_count", 0)) + 1
            data["last_used"] = (when or datetime.now(timezone.utc)).isoformat()
            await self._commit(doc)

    async def get_setting(self, key: str, default: Any = None) -> Any:
        async with self._lock:
            doc = await self._document()
            return doc["settings"].get(key, default)

    async def set_setting(self, key: str, value: Any) -> None:
        async with self._lock:
            doc = copy.deepcopy(await self._document())
            doc["settings"][key] = value
            await self._commit(doc)

    async def is_ai_enabled(self) -> bool:
        return bool(await self.get_setting(AI_ENABLED_KEY, False))
