"""
AI Backend - chat replies, speech synthesis and image generation over the
OpenAI-compatible API.
"""
import base64
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import openai

from .config import load_config
from .exceptions import InferenceError
from .retry import RetryPolicy, with_retry
from .transport import MediaPayload
from .utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = """You're a chill, witty chat bot with a slightly sarcastic sense of humor. Keep responses brief and casual.
Key traits:
- Use humor and light sarcasm when appropriate
- Keep responses short and punchy (1-2 sentences max usually)
- Match the language of the user's message
- Feel free to use emojis occasionally, but don't overdo it
- Don't be formal or robotic - be conversational

Always respond in this JSON format:
{
  "response": "your response text here",
  "command": null or one of "!img <query>", "!pfp <user>", "!toggleai",
  "terminate": boolean indicating if conversation should end
}

Examples:
User: "thanks"
{"response": "anytime", "command": null, "terminate": true}

User: "get me a picture of a horse"
{"response": "Getting those horses ready for you 🐎", "command": "!img horse", "terminate": false}
"""

ROLE_MAP = {"user": "user", "model": "assistant"}


@dataclass
class AIReply:
    """Structured reply from the chat model."""

    text: str
    command: Optional[str] = None
    terminate: bool = False


def is_transient_ai_error(error: BaseException) -> bool:
    """Connection problems, timeouts, rate limits and 5xx are worth retrying."""
    return isinstance(
        error,
        (
            openai.APIConnectionError,
            openai.RateLimitError,
            openai.InternalServerError,
        ),
    )


def _retry_policy(config: Dict[str, Any], label: str) -> RetryPolicy:
    def _on_retry(error: BaseException, attempt: int) -> None:
        logger.warning(f"⚠️ {label} retry {attempt}: {error}", extra={"subsys": "ai", "event": "ai.retry"})

    return RetryPolicy(
        max_retries=config["AI_MAX_RETRIES"],
        base_delay_ms=config["AI_RETRY_DELAY_MS"],
        retry_predicate=is_transient_ai_error,
        on_retry=_on_retry,
    )


def build_client(config: Dict[str, Any]) -> openai.AsyncOpenAI:
    return openai.AsyncOpenAI(
        api_key=config.get("OPENAI_API_KEY"),
        base_url=config.get("OPENAI_API_BASE"),
        timeout=httpx.Timeout(config.get("AI_TIMEOUT_S", 45.0)),
        max_retries=0,  # with_retry owns retries
    )


def load_system_prompt(config: Dict[str, Any]) -> str:
    prompt_file = config.get("PROMPT_FILE")
    if not prompt_file:
        return DEFAULT_SYSTEM_PROMPT
    try:
        return Path(prompt_file).read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.error(f"❌ Could not read PROMPT_FILE {prompt_file}: {e}; using built-in prompt")
        return DEFAULT_SYSTEM_PROMPT


def parse_ai_reply(raw: str) -> AIReply:
    """Parse the model's JSON output; anything malformed is an InferenceError."""
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise InferenceError(f"Model returned malformed JSON: {e}") from e

    if not isinstance(data, dict):
        raise InferenceError(f"Model returned {type(data).__name__}, expected an object")

    text = data.get("response") or data.get("text")
    if not isinstance(text, str) or not text.strip():
        raise InferenceError("Model reply has no response text")

    command = data.get("command")
    if command is not None and not isinstance(command, str):
        raise InferenceError("Model reply command must be a string or null")

    if command is not None:
        command = command.strip() or None

    return AIReply(text=text.strip(), command=command, terminate=bool(data.get("terminate", False)))


async def generate_ai_reply(
    user_message: str,
    history: Optional[List[Dict[str, str]]] = None,
    *,
    config: Optional[Dict[str, Any]] = None,
    client: Optional[openai.AsyncOpenAI] = None,
) -> AIReply:
    """
    Generate a structured reply for one user turn.

    Args:
        user_message: The user's text
        history: Prior turns as ``{"role": "user"|"model", "text": ...}``
        config: Configuration dict (defaults to load_config())
        client: Optional pre-built client, mainly for tests

    Returns:
        The parsed AIReply
    """
    config = config or load_config()
    client = client or build_client(config)

    messages: List[Dict[str, str]] = [{"role": "system", "content": load_system_prompt(config)}]
    for entry in history or []:
        messages.append({"role": ROLE_MAP.get(entry["role"], "user"), "content": entry["text"]})
    messages.append({"role": "user", "content": user_message})

    logger.debug(
        f"🤖 Prompt: '{user_message[:100]}{'...' if len(user_message) > 100 else ''}' ({len(history or [])} prior turns)",
        extra={"subsys": "ai"},
    )

    async def _call():
        return await client.chat.completions.create(
            model=config["AI_MODEL"],
            messages=messages,
            temperature=config["AI_TEMPERATURE"],
            response_format={"type": "json_object"},
        )

    try:
        response = await with_retry(_call, _retry_policy(config, "Chat completion"))
    except openai.OpenAIError as e:
        raise InferenceError(f"Chat completion failed: {e}") from e

    if not response.choices:
        raise InferenceError("Chat completion returned no choices")
    reply = parse_ai_reply(response.choices[0].message.content)
    logger.info(
        f"✅ AI reply generated (command={reply.command}, terminate={reply.terminate})",
        extra={"subsys": "ai", "event": "ai.reply"},
    )
    return reply


async def synthesize_speech(
    text: str,
    *,
    config: Optional[Dict[str, Any]] = None,
    client: Optional[openai.AsyncOpenAI] = None,
) -> MediaPayload:
    """Render text to an MP3 payload."""
    config = config or load_config()
    client = client or build_client(config)

    async def _call():
        return await client.audio.speech.create(
            model=config["TTS_MODEL"],
            voice=config["TTS_VOICE"],
            input=text,
            response_format="mp3",
        )

    try:
        response = await with_retry(_call, _retry_policy(config, "Speech synthesis"))
    except openai.OpenAIError as e:
        raise InferenceError(f"Speech synthesis failed: {e}") from e

    return MediaPayload(mimetype="audio/mpeg", data=response.content, filename="speech.mp3")


async def generate_image(
    prompt: str,
    *,
    config: Optional[Dict[str, Any]] = None,
    client: Optional[openai.AsyncOpenAI] = None,
) -> MediaPayload:
    """Generate one PNG image for the prompt."""
    config = config or load_config()
    client = client or build_client(config)

    async def _call():
        return await client.images.generate(
            model=config["IMAGE_MODEL"],
            prompt=prompt,
            n=1,
            size="1024x1024",
            response_format="b64_json",
        )

    try:
        result = await with_retry(_call, _retry_policy(config, "Image generation"))
    except openai.OpenAIError as e:
        raise InferenceError(f"Image generation failed: {e}") from e

    if not result.data or not result.data[0].b64_json:
        raise InferenceError("Image generation returned no image")
    return MediaPayload(mimetype="image/png", data=base64.b64decode(result.data[0].b64_json), filename="image.png")
