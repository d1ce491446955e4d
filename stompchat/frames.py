import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from .errors import FrameError

NULL = "\x00"
HEARTBEAT = "\n"

# Header values on these frames are sent verbatim (STOMP 1.2 section "Value Encoding").
_VERBATIM_COMMANDS = ("CONNECT", "CONNECTED")

_ESCAPES = (("\\", "\\\\"), ("\r", "\\r"), ("\n", "\\n"), (":", "\\c"))
_UNESCAPES = {"\\\\": "\\", "\\r": "\r", "\\n": "\n", "\\c": ":"}

_HEAD_END = re.compile(rb"\r?\n\r?\n")
_EOL = re.compile(r"\r?\n")


@dataclass
class Frame:
    command: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""


def _escape(text: str) -> str:
    for raw, escaped in _ESCAPES:
        text = text.replace(raw, escaped)
    return text


def _unescape(text: str) -> str:
    if "\\" not in text:
        return text
    out = []
    i = 0
    while i < len(text):
        if text[i] == "\\":
            pair = text[i : i + 2]
            if pair not in _UNESCAPES:
                raise FrameError(f"invalid header escape {pair!r}")
            out.append(_UNESCAPES[pair])
            i += 2
        else:
            out.append(text[i])
            i += 1
    return "".join(out)


def _text(raw: bytearray, part: str) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise FrameError(f"{part} is not valid UTF-8: {e.reason}") from None


def encode_frame(frame: Frame) -> str:
    """Serialize a frame to the text sent in one websocket message."""
    escape = frame.command not in _VERBATIM_COMMANDS
    headers = {k: str(v) for k, v in frame.headers.items()}
    if frame.body and "content-length" not in headers:
        headers["content-length"] = str(len(frame.body.encode("utf-8")))
    lines = [frame.command]
    for name, value in headers.items():
        if escape:
            name, value = _escape(name), _escape(value)
        lines.append(f"{name}:{value}")
    return "\n".join(lines) + "\n\n" + frame.body + NULL


class FrameBuffer:
    """Incremental decoder for the frames arriving on one connection.

    Brokers may pack several frames (and heart-beat EOLs) into one websocket
    message, or in theory split one frame over several, so whatever is left
    after the last complete frame is kept for the next ``feed``.
    """

    def __init__(self):
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def feed(self, data: Union[str, bytes]) -> List[Frame]:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._buf.extend(data)
        frames = []
        while True:
            self._skip_heartbeats()
            if not self._buf:
                break
            try:
                frame = self._next_frame()
            except FrameError:
                self._buf.clear()
                raise
            if frame is None:
                break
            frames.append(frame)
        return frames

    def _skip_heartbeats(self) -> None:
        while True:
            if self._buf[:1] == b"\n":
                del self._buf[:1]
            elif self._buf[:2] == b"\r\n":
                del self._buf[:2]
            else:
                return

    def _next_frame(self) -> Optional[Frame]:
        m = _HEAD_END.search(self._buf)
        if not m:
            return None
        lines = _EOL.split(_text(self._buf[: m.start()], "header block"))
        command = lines[0]
        escape = command not in _VERBATIM_COMMANDS
        headers: Dict[str, str] = {}
        for line in lines[1:]:
            name, sep, value = line.partition(":")
            if not sep:
                raise FrameError(f"malformed header line {line!r} in {command} frame")
            if escape:
                name, value = _unescape(name), _unescape(value)
            # repeated headers: first one wins
            headers.setdefault(name, value)

        body_start = m.end()
        length = headers.get("content-length")
        if length is not None:
            try:
                end = body_start + int(length)
            except ValueError:
                raise FrameError(f"bad content-length {length!r}") from None
            if len(self._buf) <= end:
                return None
            if self._buf[end] != 0:
                raise FrameError(f"{command} frame body is not NUL terminated")
        else:
            end = self._buf.find(b"\x00", body_start)
            if end < 0:
                return None
        body = _text(self._buf[body_start:end], f"{command} body")
        del self._buf[: end + 1]
        return Frame(command, headers, body)
