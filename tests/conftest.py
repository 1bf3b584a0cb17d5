"""
Shared fixtures: in-memory stand-ins for chats and inbound messages, plus
small config dicts so tests never read the environment.
"""

import pytest
from unittest.mock import AsyncMock


class FakeChat:
    def __init__(self, chat_id: str = "chat-1"):
        self.id = chat_id
        self.send_typing = AsyncMock()
        self.send_recording = AsyncMock()
        self.clear_state = AsyncMock()
        self.send_message = AsyncMock()


class FakeMessage:
    def __init__(
        self,
        body: str = "",
        author_id: str = "100",
        author_name: str = "Tester",
        chat: FakeChat = None,
        quoted: "FakeMessage" = None,
        mirror_only: bool = False,
    ):
        self.body = body
        self.author_id = author_id
        self.author_name = author_name
        self.chat = chat or FakeChat()
        self.quoted = quoted
        self.has_quoted_msg = quoted is not None
        self.mirror_only = mirror_only
        self.reply = AsyncMock()

    async def get_chat(self):
        return self.chat

    async def get_quoted_message(self):
        return self.quoted

    async def refresh(self):
        return self.body


@pytest.fixture
def make_message():
    """Factory for FakeMessage instances."""
    return FakeMessage


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def media_config():
    return {
        "EXTRACTION_API_URL": "https://extract.test/",
        "EXTRACTION_API_KEY": None,
        "EXTRACTION_VIDEO_QUALITY": "720",
        "MEDIA_PROCESSING_TIMEOUT_S": 5.0,
        "MEDIA_DEFAULT_TIMEOUT_S": 5.0,
        "MEDIA_MAX_RETRIES": 3,
        "MEDIA_RETRY_DELAY_MS": 10,
        "MEDIA_MAX_DOWNLOAD_BYTES": 1024,
        "MEDIA_CANCEL_ON_TIMEOUT": True,
    }


@pytest.fixture
def ai_config():
    return {
        "OPENAI_API_KEY": "test-key",
        "OPENAI_API_BASE": "https://api.openai.test/v1",
        "AI_MODEL": "gpt-4o-mini",
        "AI_TEMPERATURE": 1.0,
        "AI_TIMEOUT_S": 5.0,
        "AI_MAX_RETRIES": 2,
        "AI_RETRY_DELAY_MS": 10,
        "PROMPT_FILE": None,
        "TTS_MODEL": "tts-1",
        "TTS_VOICE": "alloy",
        "IMAGE_MODEL": "dall-e-3",
    }


@pytest.fixture
def sleeps(monkeypatch):
    """Record backoff delays instead of sleeping."""
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr("relaybot.retry.asyncio.sleep", fake_sleep)
    return delays
