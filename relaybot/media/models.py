"""Data types for media extraction results."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ..exceptions import ExtractionError
from ..transport import MediaPayload


@dataclass
class PickerItem:
    type: str
    url: str


@dataclass
class PickerResult:
    """Extraction offered several candidate items."""

    items: List[PickerItem]

    def photo_urls(self) -> List[str]:
        return [item.url for item in self.items if item.type == "photo" and item.url]


@dataclass
class DirectResult:
    """Extraction resolved to one or more direct media URLs."""

    urls: List[str]
    filename: Optional[str] = None


MediaExtractionResult = Union[PickerResult, DirectResult]


@dataclass
class DownloadedMedia:
    mimetype: str
    data: bytes

    def as_payload(self, filename: Optional[str] = None) -> MediaPayload:
        return MediaPayload(mimetype=self.mimetype, data=self.data, filename=filename)


@dataclass
class ExtractionOutcome:
    """What happened to one message on the media path."""

    url: Optional[str] = None
    platform: Optional[str] = None
    processed: bool = False
    delivered: int = 0
    error: Optional[str] = None

    @property
    def detected(self) -> bool:
        return self.url is not None


def parse_extraction_result(payload: Dict[str, Any]) -> MediaExtractionResult:
    """Classify an extraction API response body."""
    if not isinstance(payload, dict):
        raise ExtractionError(f"Unexpected extraction response type: {type(payload).__name__}")

    status = payload.get("status")
    if status == "error":
        error = payload.get("error")
        code = error.get("code") if isinstance(error, dict) else error
        raise ExtractionError(f"Extraction API reported an error: {code}")

    if status == "picker" and isinstance(payload.get("picker"), list):
        items = [
            PickerItem(type=str(entry.get("type", "")), url=str(entry.get("url") or ""))
            for entry in payload["picker"]
            if isinstance(entry, dict)
        ]
        return PickerResult(items=items)

    url = payload.get("url")
    urls = url if isinstance(url, list) else [url]
    urls = [u for u in urls if isinstance(u, str) and u]
    if not urls:
        raise ExtractionError("Extraction response contained no media URL")
    return DirectResult(urls=urls, filename=payload.get("filename") or None)
