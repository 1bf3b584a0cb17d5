"""
Commands that answer with media: profile pictures, speech and images.
"""
from typing import List

from ..transport import InboundMessage
from ..utils.logging import get_logger
from .base import CommandHandler

logger = get_logger(__name__)


class PfpCommand(CommandHandler):
    """Profile picture of ``<user>`` or of the quoted message's author."""

    name = "pfp"
    description = "Show someone's profile picture"

    async def execute(self, message: InboundMessage, args: List[str]) -> None:
        target = args[0] if args else None
        if target is None and message.has_quoted_msg:
            quoted = await message.get_quoted_message()
            target = quoted.author_id if quoted else None
        if not target:
            await message.reply(f"Usage: {self.ctx.prefix}pfp <user> or reply to a message")
            return

        url = await self.ctx.transport.get_profile_picture_url(target)
        if not url:
            await message.reply("No profile picture found.")
            return

        media = await self.ctx.downloader.download(url)
        await message.reply(media.as_payload())


class SpeakCommand(CommandHandler):
    """Read the quoted message out loud as a voice note."""

    name = "speak"
    description = "Read a quoted message out loud"

    async def execute(self, message: InboundMessage, args: List[str]) -> None:
        quoted = await message.get_quoted_message() if message.has_quoted_msg else None
        text = quoted.body.strip() if quoted and quoted.body else ""
        if not text:
            await message.reply(f"Reply to a text message with {self.ctx.prefix}speak")
            return

        audio = await self.ctx.synthesize_speech(text)
        await message.reply(audio, send_audio_as_voice=True)


class ImgCommand(CommandHandler):
    name = "img"
    description = "Generate an image from a prompt"

    async def execute(self, message: InboundMessage, args: List[str]) -> None:
        if not args:
            await message.reply(f"Usage: {self.ctx.prefix}img <prompt>")
            return

        prompt = " ".join(args)
        logger.info(f"🎨 Generating image for: {prompt[:80]}", extra={"subsys": "commands", "event": "img.start"})
        image = await self.ctx.generate_image(prompt)
        await message.reply(image)
