"""
Message queue and scheduler.

Inbound messages are buffered in arrival order and drained one at a time on a
fixed interval; each message is routed to the command dispatcher, the media
extractor or an AI turn and fully processed before the next one starts.
"""

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from .ai_backend import AIReply
from .dispatcher import CommandDispatcher, is_command
from .media.extractor import MediaExtractor
from .presence import PresenceManager
from .sessions import SessionStore
from .store import CommandStore
from .transport import Chat, InboundMessage
from .tts import VoiceMirror
from .utils.logging import get_logger, message_context

logger = get_logger(__name__)

PROCESSING_ERROR_REPLY = "Sorry, there was an error processing your message."
FAREWELL_REPLY = "Alright, talk to you later!"

AIReplyFn = Callable[[str, List[Dict[str, str]]], Awaitable[AIReply]]


class MessageQueue:
    """Single-consumer FIFO of inbound messages."""

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        media_extractor: MediaExtractor,
        store: CommandStore,
        sessions: SessionStore,
        presence: PresenceManager,
        ai_reply: AIReplyFn,
        voice_mirror: Optional[VoiceMirror] = None,
        processing_interval: float = 1.0,
        run_ai_commands: bool = True,
    ):
        self.dispatcher = dispatcher
        self.media_extractor = media_extractor
        self.store = store
        self.sessions = sessions
        self.presence = presence
        self.ai_reply = ai_reply
        self.voice_mirror = voice_mirror
        self.processing_interval = processing_interval
        self.run_ai_commands = run_ai_commands

        self._queue: Deque[InboundMessage] = deque()
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()
        self._stats = {"enqueued": 0, "processed": 0, "failed": 0}

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def stats(self) -> Dict[str, Any]:
        return {**self._stats, "pending": len(self._queue)}

    def enqueue(self, message: Optional[InboundMessage]) -> bool:
        """Append ``message`` if it has a body; messages without one are ignored."""
        if message is None or not getattr(message, "body", None):
            return False
        self._queue.append(message)
        self._stats["enqueued"] += 1
        logger.debug(
            f"📥 Enqueued message ({len(self._queue)} pending)",
            extra={"subsys": "queue", "event": "message.enqueued", **message_context(message)},
        )
        return True

    async def process_queue(self) -> int:
        """Drain the queue head-first; returns how many entries were handled."""
        handled = 0
        while self._queue and not self._stopping.is_set():
            message = self._queue.popleft()
            try:
                await self.process_message(message)
                self._stats["processed"] += 1
            except Exception as e:
                self._stats["failed"] += 1
                logger.error(
                    f"❌ Unhandled failure while processing queued message: {e}",
                    exc_info=True,
                    extra={"subsys": "queue", "event": "message.failed"},
                )
            handled += 1
        return handled

    async def process_message(self, message: InboundMessage) -> None:
        chat: Optional[Chat] = None
        try:
            chat = await message.get_chat()

            if getattr(message, "mirror_only", False):
                if self.voice_mirror is not None:
                    await self.voice_mirror.maybe_voice(message)
                await self.presence.clear(chat)
                return

            if is_command(message.body, self.dispatcher.sigil):
                await self.dispatcher.dispatch(message, chat)
                return

            outcome = await self.media_extractor.handle(message)
            if outcome.detected:
                await self.presence.clear(chat)
                return

            if self.voice_mirror is not None:
                await self.voice_mirror.maybe_voice(message)

            if await self.store.is_ai_enabled():
                await self.presence.set_typing(chat)
                await self.process_ai_message(message, chat)

            await self.presence.clear(chat)
        except Exception as e:
            logger.error(
                f"❌ Error processing message: {e}",
                exc_info=True,
                extra={"subsys": "queue", "event": "message.error", **message_context(message, chat)},
            )
            try:
                await message.reply(PROCESSING_ERROR_REPLY)
            except Exception as reply_error:
                logger.error(f"❌ Could not send error reply: {reply_error}", extra={"subsys": "queue"})
            if chat is not None:
                await self.presence.clear(chat)

    async def process_ai_message(self, message: InboundMessage, chat: Chat) -> None:
        user_id = str(message.author_id)
        history = self.sessions.history(user_id)
        reply = await self.ai_reply(message.body, history)

        if reply.terminate:
            self.sessions.end(user_id)
            await chat.send_message(FAREWELL_REPLY)
        else:
            self.sessions.record_turn(user_id, message.body, reply.text)
            await chat.send_message(reply.text)

        if reply.command and self.run_ai_commands and is_command(reply.command, self.dispatcher.sigil):
            logger.info(f"🤖 AI requested command: {reply.command}", extra={"subsys": "queue", "event": "ai.command"})
            await self.dispatcher.dispatch(message, chat, command_line=reply.command)

    def prune_sessions(self) -> int:
        dropped = self.sessions.prune()
        if dropped:
            logger.debug(f"🧹 Dropped {dropped} expired session(s)", extra={"subsys": "queue", "event": "sessions.pruned"})
        return dropped

    async def _run(self) -> None:
        logger.info(
            f"🚀 Message queue started (interval={self.processing_interval:.2f}s)",
            extra={"subsys": "queue", "event": "queue.started"},
        )
        while not self._stopping.is_set():
            await self.process_queue()
            self.prune_sessions()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.processing_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("🛑 Message queue stopped", extra={"subsys": "queue", "event": "queue.stopped"})

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run(), name="message-queue")
        return self._task

    async def stop(self) -> None:
        """Stop after the in-flight message; anything still queued is left unprocessed."""
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
