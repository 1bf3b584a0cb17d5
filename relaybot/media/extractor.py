"""
Media link extraction and relay.

Given a message, find a supported platform URL, resolve it through the
extraction API, download every resulting item and relay each one back as a
reply. Items fail independently; the whole run is bounded by a deadline.
"""

from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import OperationTimeoutError, TransportError
from ..presence import PresenceManager
from ..retry import RetryPolicy, run_with_deadline, with_retry
from ..transport import InboundMessage, MediaPayload
from ..utils.logging import get_logger
from .client import ExtractionClient, MediaDownloader
from .models import DirectResult, ExtractionOutcome, PickerResult
from .patterns import detect_platform, extract_url

logger = get_logger(__name__)

FAILURE_NOTICE = "Sorry, I couldn't process that media link. Please try again later."
NON_RETRYABLE_DELIVERY_MARKER = "evaluation failed"
TRANSIENT_DELIVERY_MARKERS = ("timeout", "network", "econnreset")


def is_retryable_delivery_error(error: BaseException) -> bool:
    """
    Transient transport failures only. Any "Evaluation failed" error is a
    known permanent client-side failure and is never retried.
    """
    message = str(error).lower()
    if NON_RETRYABLE_DELIVERY_MARKER in message:
        return False
    if isinstance(error, TransportError):
        return error.transient
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    return any(marker in message for marker in TRANSIENT_DELIVERY_MARKERS)


class MediaExtractor:
    """Runs the detect → extract → download → deliver pipeline for one message."""

    def __init__(
        self,
        extraction_client: ExtractionClient,
        downloader: MediaDownloader,
        presence: PresenceManager,
        config: Dict[str, Any],
    ):
        self.extraction_client = extraction_client
        self.downloader = downloader
        self.presence = presence
        self.processing_timeout = config["MEDIA_PROCESSING_TIMEOUT_S"]
        self.cancel_on_timeout = config.get("MEDIA_CANCEL_ON_TIMEOUT", True)
        self.max_retries = config["MEDIA_MAX_RETRIES"]
        self.retry_delay_ms = config["MEDIA_RETRY_DELAY_MS"]

    @property
    def deadline(self) -> float:
        return self.processing_timeout * 1.5

    async def safely_send_media(
        self, message: InboundMessage, payload: MediaPayload, *, send_audio_as_voice: bool = False
    ) -> bool:
        """Reply with one media payload; returns False instead of raising."""

        async def _send() -> bool:
            await message.reply(payload, send_audio_as_voice=send_audio_as_voice)
            return True

        try:
            return await with_retry(
                _send,
                RetryPolicy(
                    max_retries=self.max_retries,
                    base_delay_ms=self.retry_delay_ms,
                    retry_predicate=is_retryable_delivery_error,
                ),
            )
        except Exception as e:
            logger.error(
                f"❌ Failed to send media after retries: {e}",
                extra={"subsys": "media", "event": "deliver.failed"},
            )
            return False

    def _plan(self, result) -> Tuple[List[str], Optional[str]]:
        if isinstance(result, PickerResult):
            # Only photos are taken from a picker; filenames belong to direct results
            return result.photo_urls(), None
        if isinstance(result, DirectResult):
            return result.urls, result.filename
        return [], None

    async def send_media(self, url: str, message: InboundMessage) -> int:
        """Extract, download and deliver everything behind ``url``; returns the delivered count."""
        result = await self.extraction_client.extract(url)
        media_urls, filename = self._plan(result)
        if not media_urls:
            logger.warning(f"⚠️ No deliverable media behind {url}", extra={"subsys": "media"})
            return 0

        delivered = 0
        for media_url in media_urls:
            try:
                media = await self.downloader.download(media_url)
                # Audio goes out as a regular file, never as a voice note
                sent = await self.safely_send_media(
                    message, media.as_payload(filename), send_audio_as_voice=False
                )
                if sent:
                    delivered += 1
            except Exception as e:
                logger.error(
                    f"❌ Error processing media URL {media_url}: {e}",
                    extra={"subsys": "media", "event": "item.failed"},
                )

        logger.info(
            f"📦 Delivered {delivered}/{len(media_urls)} media items for {url}",
            extra={"subsys": "media", "event": "media.delivered"},
        )
        return delivered

    async def _notify_failure(self, message: InboundMessage) -> None:
        try:
            await message.reply(FAILURE_NOTICE)
        except Exception as e:
            logger.debug(f"Failure notice could not be sent: {e}", extra={"subsys": "media"})

    async def handle(self, message: InboundMessage) -> ExtractionOutcome:
        """
        Process ``message`` if it carries a supported media link.

        Never raises: timeouts and errors become an unprocessed outcome, and the
        sender gets one best-effort failure notice.
        """
        body = getattr(message, "body", None)
        url = extract_url(body)
        if not url:
            return ExtractionOutcome()

        outcome = ExtractionOutcome(url=url, platform=detect_platform(url))
        logger.info(
            f"🔗 Media URL detected ({outcome.platform or 'unknown'}): {url}",
            extra={"subsys": "media", "event": "url.detected"},
        )

        try:
            chat = await message.get_chat()
            await self.presence.set_typing(chat)

            outcome.delivered = await run_with_deadline(
                self.send_media(url, message), self.deadline, cancel=self.cancel_on_timeout
            )
            outcome.processed = outcome.delivered > 0
        except OperationTimeoutError as e:
            logger.error(f"⏱️ Media processing timeout for {url}: {e}", extra={"subsys": "media", "event": "media.timeout"})
            outcome.error = str(e)
        except Exception as e:
            logger.error(
                f"❌ Error in handling media extraction for {url}: {e}",
                exc_info=True,
                extra={"subsys": "media", "event": "media.failed"},
            )
            outcome.error = str(e)

        if not outcome.processed:
            await self._notify_failure(message)
        return outcome
