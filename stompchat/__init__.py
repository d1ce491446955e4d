"""Terminal chat client speaking STOMP over a WebSocket."""

__version__ = "0.1.0"
