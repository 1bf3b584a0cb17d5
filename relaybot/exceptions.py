"""
Errors raised by relaybot.

Everything derives from BotBaseException so the queue and dispatcher can
catch relaybot failures separately from library bugs.
"""


class BotBaseException(Exception):
    """Root of every relaybot error."""

    pass


class ConfigurationError(BotBaseException):
    """Startup config is unusable, e.g. DISCORD_TOKEN or OPENAI_API_KEY is missing."""

    pass


class APIError(BotBaseException):
    """The media extraction service or a media host answered badly."""

    pass


class ExtractionError(APIError):
    """The extraction API returned an error status, or JSON that is neither a picker nor a direct result."""

    pass


class MediaDownloadError(APIError):
    """A picker or direct media URL could not be fetched."""

    pass


class MediaTooLargeError(MediaDownloadError):
    """The download stream passed MEDIA_MAX_DOWNLOAD_BYTES and was aborted."""

    pass


class InferenceError(BotBaseException):
    """The model call failed or its JSON reply was malformed (chat, speech, image)."""

    pass


class TransportError(BotBaseException):
    """A Discord send, fetch or lookup failed.

    ``transient`` marks failures worth retrying (timeouts, resets, 5xx).
    """

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


class OperationTimeoutError(BotBaseException):
    """Work raced by ``run_with_deadline`` (media handling for one message) missed its deadline."""

    pass
