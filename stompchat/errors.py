class StompError(Exception):
    """Base class for client errors."""


class FrameError(StompError):
    """A frame could not be decoded."""


class StompConnectionError(StompError):
    """The broker connection failed, was refused, or is gone."""


class MessageError(StompError):
    """A chat payload could not be decoded."""
