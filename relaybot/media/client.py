"""
HTTP clients for the extraction API and for media downloads.

Both share one ``httpx.AsyncClient`` and wrap each request in ``with_retry``
with a predicate that only accepts transient failures.
"""

from typing import Any, Dict, Optional

import httpx

from ..exceptions import ExtractionError, MediaDownloadError, MediaTooLargeError
from ..retry import RetryPolicy, with_retry
from ..utils.logging import get_logger
from .models import DownloadedMedia, MediaExtractionResult, parse_extraction_result

logger = get_logger(__name__)

DOWNLOAD_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "image/*, video/*, audio/*",
    "Accept-Language": "en-US,en;q=0.9",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def create_http_client(config: Dict[str, Any]) -> httpx.AsyncClient:
    """Build the shared client used for extraction and downloads."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config["MEDIA_DEFAULT_TIMEOUT_S"]),
        follow_redirects=True,
        max_redirects=10,
        limits=httpx.Limits(max_connections=16, max_keepalive_connections=8),
    )


def is_retryable_extraction_error(error: BaseException) -> bool:
    """Network errors, timeouts and 5xx answers."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return isinstance(error, httpx.TransportError)


def is_retryable_download_error(error: BaseException) -> bool:
    """Timeouts, aborted streams, broken connections and 5xx answers; never 4xx."""
    if isinstance(error, MediaTooLargeError):
        return False
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    message = str(error).lower()
    return "timeout" in message or "stream has been aborted" in message


class ExtractionClient:
    """Client for a Cobalt-compatible extraction API."""

    def __init__(self, http: httpx.AsyncClient, config: Dict[str, Any]):
        self.http = http
        self.api_url = config["EXTRACTION_API_URL"]
        self.api_key = config.get("EXTRACTION_API_KEY")
        self.timeout = config["MEDIA_PROCESSING_TIMEOUT_S"]
        self.max_retries = config["MEDIA_MAX_RETRIES"]
        self.retry_delay_ms = config["MEDIA_RETRY_DELAY_MS"]
        self.default_options = {
            "videoQuality": config.get("EXTRACTION_VIDEO_QUALITY", "720"),
            "youtubeHLS": True,
            "twitterGif": False,
            "tiktokH265": True,
            "alwaysProxy": True,
        }

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Api-Key {self.api_key}"
        return headers

    async def extract(self, url: str, **options: Any) -> MediaExtractionResult:
        """Ask the extraction API what media lives behind ``url``."""
        payload = {"url": url, **self.default_options, **options}

        async def _request() -> Dict[str, Any]:
            response = await self.http.post(
                self.api_url, json=payload, headers=self._headers(), timeout=self.timeout
            )
            if response.status_code >= 500:
                response.raise_for_status()
            if response.status_code != 200 or not response.content:
                raise ExtractionError(
                    f"Failed to fetch media details (HTTP {response.status_code})"
                )
            try:
                return response.json()
            except ValueError as e:
                raise ExtractionError(f"Extraction API returned invalid JSON: {e}") from e

        def _on_retry(error: BaseException, attempt: int) -> None:
            logger.warning(
                f"⚠️ Extraction API retry {attempt} for URL: {url}. Error: {error}",
                extra={"subsys": "media", "event": "extract.retry"},
            )

        data = await with_retry(
            _request,
            RetryPolicy(
                max_retries=self.max_retries,
                base_delay_ms=self.retry_delay_ms,
                retry_predicate=is_retryable_extraction_error,
                on_retry=_on_retry,
            ),
        )
        logger.debug(f"Extracted media data: {data}", extra={"subsys": "media", "event": "extract.done"})
        return parse_extraction_result(data)


class MediaDownloader:
    """Downloads media items with a hard size cap."""

    def __init__(self, http: httpx.AsyncClient, config: Dict[str, Any]):
        self.http = http
        self.timeout = config["MEDIA_PROCESSING_TIMEOUT_S"]
        self.max_bytes = config["MEDIA_MAX_DOWNLOAD_BYTES"]
        self.max_retries = config["MEDIA_MAX_RETRIES"]
        self.retry_delay_ms = config["MEDIA_RETRY_DELAY_MS"]

    async def _fetch(self, url: str) -> DownloadedMedia:
        async with self.http.stream("GET", url, headers=DOWNLOAD_HEADERS, timeout=self.timeout) as response:
            response.raise_for_status()

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > self.max_bytes:
                raise MediaTooLargeError(
                    f"Media at {url} is {int(declared)} bytes, limit is {self.max_bytes}"
                )

            chunks = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > self.max_bytes:
                    raise MediaTooLargeError(f"Media at {url} exceeds {self.max_bytes} bytes")
                chunks.append(chunk)

            mimetype = response.headers.get("content-type") or DEFAULT_CONTENT_TYPE
            return DownloadedMedia(mimetype=mimetype.split(";")[0].strip(), data=b"".join(chunks))

    async def download(self, url: Optional[str]) -> DownloadedMedia:
        if not url:
            raise MediaDownloadError("Invalid media URL")

        def _on_retry(error: BaseException, attempt: int) -> None:
            logger.warning(
                f"⚠️ Media download retry {attempt} for URL: {url}. Error: {error}",
                extra={"subsys": "media", "event": "download.retry"},
            )

        media = await with_retry(
            lambda: self._fetch(url),
            RetryPolicy(
                max_retries=self.max_retries,
                base_delay_ms=self.retry_delay_ms,
                retry_predicate=is_retryable_download_error,
                on_retry=_on_retry,
            ),
        )
        logger.debug(
            f"Downloaded media - URL: {url}, MIME type: {media.mimetype}, size: {len(media.data)} bytes",
            extra={"subsys": "media", "event": "download.done"},
        )
        return media
