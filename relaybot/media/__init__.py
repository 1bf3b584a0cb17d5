"""Media link extraction: URL detection, extraction API, download and relay."""

from typing import Any, Dict

import httpx

from ..presence import PresenceManager
from .client import ExtractionClient, MediaDownloader, create_http_client
from .extractor import MediaExtractor
from .models import DirectResult, ExtractionOutcome, PickerItem, PickerResult
from .patterns import extract_url


def build_media_extractor(
    config: Dict[str, Any], presence: PresenceManager, http: httpx.AsyncClient
) -> MediaExtractor:
    return MediaExtractor(
        extraction_client=ExtractionClient(http, config),
        downloader=MediaDownloader(http, config),
        presence=presence,
        config=config,
    )


__all__ = [
    "DirectResult",
    "ExtractionClient",
    "ExtractionOutcome",
    "MediaDownloader",
    "MediaExtractor",
    "PickerItem",
    "PickerResult",
    "build_media_extractor",
    "create_http_client",
    "extract_url",
]
