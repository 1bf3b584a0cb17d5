"""Configuration loading and environment setup."""
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .utils.logging import get_logger

logger = get_logger(__name__)

load_dotenv(dotenv_path=Path.cwd() / ".env", verbose=False)
load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env", verbose=False)

DEFAULT_EXTRACTION_API_URL = "https://nuclear-ashien-cobalto-d51291d3.koyeb.app/"

REQUIRED_VARS = ("DISCORD_TOKEN", "OPENAI_API_KEY")


def _clean_env_value(value: Optional[str]) -> Optional[str]:
    """Strip inline ``#`` comments and whitespace from an env value."""
    if not value:
        return value
    return value.split("#")[0].strip()


def _safe_int(value: Optional[str], default: str, var_name: str) -> int:
    """Safely convert environment variable to int, handling malformed values."""
    try:
        clean_value = _clean_env_value(value) or default
        return int(clean_value)
    except (ValueError, AttributeError):
        logger.warning(f"⚠️ Invalid {var_name} value '{value}', using default {default}")
        return int(default)


def _safe_float(value: Optional[str], default: str, var_name: str) -> float:
    """Safely convert environment variable to float, handling malformed values."""
    try:
        clean_value = _clean_env_value(value) or default
        return float(clean_value)
    except (ValueError, AttributeError):
        logger.warning(f"⚠️ Invalid {var_name} value '{value}', using default {default}")
        return float(default)


def _flag(name: str, default: str) -> bool:
    return (_clean_env_value(os.getenv(name, default)) or default).lower() == "true"


def _csv(name: str, default: str = "") -> List[str]:
    return [s.strip() for s in os.getenv(name, default).split(",") if s.strip()]


def validate_required_env() -> None:
    """Raise ConfigurationError if any required variable is missing."""
    missing = [var for var in REQUIRED_VARS if not os.getenv(var)]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )
    logger.debug("✅ Required environment variables present")


_config_cache: Optional[Dict[str, Any]] = None
_cache_timestamp: float = 0
CACHE_TTL = 300


def reset_config_cache() -> None:
    global _config_cache, _cache_timestamp
    _config_cache = None
    _cache_timestamp = 0


def load_config() -> Dict[str, Any]:
    """
    Load configuration from environment variables with a short-lived cache.
    """
    global _config_cache, _cache_timestamp

    current_time = time.time()
    if _config_cache and (current_time - _cache_timestamp) < CACHE_TTL:
        return _config_cache

    config = {
        # TRANSPORT
        "DISCORD_TOKEN": _clean_env_value(os.getenv("DISCORD_TOKEN")),
        "COMMAND_PREFIX": os.getenv("COMMAND_PREFIX", "!"),
        "ADMIN_IDS": _csv("ADMIN_IDS"),

        # QUEUE / STORE
        "QUEUE_INTERVAL_MS": _safe_int(os.getenv("QUEUE_INTERVAL_MS"), "1000", "QUEUE_INTERVAL_MS"),
        "COMMAND_STORE_PATH": Path(os.getenv("COMMAND_STORE_PATH", "runtime/commands.json")),

        # AI BACKEND
        "OPENAI_API_KEY": _clean_env_value(os.getenv("OPENAI_API_KEY")),
        "OPENAI_API_BASE": os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1"),
        "AI_MODEL": os.getenv("AI_MODEL", "gpt-4o-mini"),
        "AI_TEMPERATURE": _safe_float(os.getenv("AI_TEMPERATURE"), "1.0", "AI_TEMPERATURE"),
        "AI_TIMEOUT_S": _safe_float(os.getenv("AI_TIMEOUT_S"), "45", "AI_TIMEOUT_S"),
        "AI_MAX_RETRIES": _safe_int(os.getenv("AI_MAX_RETRIES"), "2", "AI_MAX_RETRIES"),
        "AI_RETRY_DELAY_MS": _safe_int(os.getenv("AI_RETRY_DELAY_MS"), "1000", "AI_RETRY_DELAY_MS"),
        "AI_RUN_COMMANDS": _flag("AI_RUN_COMMANDS", "true"),
        "PROMPT_FILE": _clean_env_value(os.getenv("PROMPT_FILE")),
        "TTS_MODEL": os.getenv("TTS_MODEL", "tts-1"),
        "TTS_VOICE": os.getenv("TTS_VOICE", "alloy"),
        "IMAGE_MODEL": os.getenv("IMAGE_MODEL", "dall-e-3"),

        # MEDIA EXTRACTION
        "EXTRACTION_API_URL": os.getenv("EXTRACTION_API_URL", DEFAULT_EXTRACTION_API_URL),
        "EXTRACTION_API_KEY": _clean_env_value(os.getenv("EXTRACTION_API_KEY")),
        "EXTRACTION_VIDEO_QUALITY": os.getenv("EXTRACTION_VIDEO_QUALITY", "720"),
        "MEDIA_PROCESSING_TIMEOUT_S": _safe_float(os.getenv("MEDIA_PROCESSING_TIMEOUT_S"), "60", "MEDIA_PROCESSING_TIMEOUT_S"),
        "MEDIA_DEFAULT_TIMEOUT_S": _safe_float(os.getenv("MEDIA_DEFAULT_TIMEOUT_S"), "30", "MEDIA_DEFAULT_TIMEOUT_S"),
        "MEDIA_MAX_RETRIES": _safe_int(os.getenv("MEDIA_MAX_RETRIES"), "3", "MEDIA_MAX_RETRIES"),
        "MEDIA_RETRY_DELAY_MS": _safe_int(os.getenv("MEDIA_RETRY_DELAY_MS"), "2000", "MEDIA_RETRY_DELAY_MS"),
        "MEDIA_MAX_DOWNLOAD_BYTES": _safe_int(os.getenv("MEDIA_MAX_DOWNLOAD_BYTES"), str(25 * 1024 * 1024), "MEDIA_MAX_DOWNLOAD_BYTES"),
        "MEDIA_CANCEL_ON_TIMEOUT": _flag("MEDIA_CANCEL_ON_TIMEOUT", "true"),

        # SESSIONS
        "SESSION_TTL_S": _safe_int(os.getenv("SESSION_TTL_S"), "1800", "SESSION_TTL_S"),
        "SESSION_MAX_TURNS": _safe_int(os.getenv("SESSION_MAX_TURNS"), "20", "SESSION_MAX_TURNS"),
        "SESSION_MAX_USERS": _safe_int(os.getenv("SESSION_MAX_USERS"), "500", "SESSION_MAX_USERS"),

        # VOICE MIRROR
        "VOICE_MIRROR_SENDERS": _csv("VOICE_MIRROR_SENDERS"),
        "VOICE_MIRROR_MIN_LENGTH": _safe_int(os.getenv("VOICE_MIRROR_MIN_LENGTH"), "300", "VOICE_MIRROR_MIN_LENGTH"),

        # LOGGING
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        "LOG_JSONL_PATH": Path(os.getenv("LOG_JSONL_PATH", "logs/bot.jsonl")),
        "LOGS_TAIL_LINES": _safe_int(os.getenv("LOGS_TAIL_LINES"), "20", "LOGS_TAIL_LINES"),
    }

    _config_cache = config
    _cache_timestamp = current_time
    return config
