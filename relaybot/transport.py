"""
Transport-facing interfaces used by the message pipeline.

The pipeline only talks to these protocols; ``discord_transport`` provides the
production implementation.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from typing import Optional, Protocol, Union


@dataclass
class MediaPayload:
    """Binary content to send through the transport."""

    mimetype: str
    data: bytes
    filename: Optional[str] = None

    def resolved_filename(self) -> str:
        if self.filename:
            return self.filename
        ext = mimetypes.guess_extension(self.mimetype.split(";")[0].strip()) or ".bin"
        return f"media{ext}"


Content = Union[str, MediaPayload]


class Chat(Protocol):
    id: str

    async def send_typing(self) -> None: ...

    async def send_recording(self) -> None: ...

    async def clear_state(self) -> None: ...

    async def send_message(self, content: Content, *, send_audio_as_voice: bool = False) -> None: ...


class InboundMessage(Protocol):
    body: str
    author_id: str
    author_name: str
    has_quoted_msg: bool
    # Only the voice mirror may act on this message
    mirror_only: bool

    async def get_chat(self) -> Chat: ...

    async def get_quoted_message(self) -> Optional["InboundMessage"]: ...

    async def refresh(self) -> str: ...

    async def reply(self, content: Content, *, send_audio_as_voice: bool = False) -> None: ...


class Transport(Protocol):
    async def send_to(self, target: str, content: Content) -> None: ...

    async def get_profile_picture_url(self, target: str) -> Optional[str]: ...
