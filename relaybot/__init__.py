"""relaybot - chat relay for commands, media links and AI replies."""

__version__ = "1.0.0"
