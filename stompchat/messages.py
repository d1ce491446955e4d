import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .errors import MessageError


class MessageType(str, Enum):
    CHAT = "CHAT"
    JOIN = "JOIN"
    LEAVE = "LEAVE"


def _load(raw: str) -> Dict[str, Any]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MessageError(f"payload is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise MessageError("payload is not a JSON object")
    return data


@dataclass
class ChatMessage:
    """One event on the public topic."""

    sender: str
    type: MessageType
    content: Optional[str] = None

    @classmethod
    def join(cls, sender: str) -> "ChatMessage":
        return cls(sender=sender, type=MessageType.JOIN)

    @classmethod
    def leave(cls, sender: str) -> "ChatMessage":
        return cls(sender=sender, type=MessageType.LEAVE)

    @classmethod
    def chat(cls, sender: str, content: str) -> "ChatMessage":
        return cls(sender=sender, type=MessageType.CHAT, content=content)

    def to_dict(self) -> Dict[str, Any]:
        data = {"sender": self.sender, "type": self.type.value}
        if self.content is not None:
            data["content"] = self.content
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str) -> "ChatMessage":
        data = _load(raw)
        sender = data.get("sender")
        if not isinstance(sender, str) or not sender:
            raise MessageError("chat message has no sender")
        try:
            msg_type = MessageType(data.get("type"))
        except ValueError:
            raise MessageError(f"unknown message type {data.get('type')!r}") from None
        content = data.get("content")
        return cls(sender=sender, type=msg_type, content=content)


@dataclass
class HelloMessage:
    name: str

    def to_json(self) -> str:
        return json.dumps({"name": self.name})


@dataclass
class Greeting:
    content: str

    @classmethod
    def from_json(cls, raw: str) -> "Greeting":
        data = _load(raw)
        content = data.get("content")
        if content is None:
            raise MessageError("greeting has no content")
        return cls(content=str(content))
