import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse, urlunparse

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8080
# SockJS endpoint registered by the broker; raw websockets live under <endpoint>/websocket
DEFAULT_ENDPOINT = "/websocket/ws"
DEFAULT_HEARTBEAT_MS = 10000

_SCHEMES = {"http": "ws", "https": "wss", "ws": "ws", "wss": "wss"}


@dataclass
class ClientSettings:
    url: str
    username: Optional[str] = None
    heartbeat_ms: int = DEFAULT_HEARTBEAT_MS

    @property
    def heartbeat(self):
        return (self.heartbeat_ms, self.heartbeat_ms)


def websocket_url(host: str, port: int, endpoint: str = DEFAULT_ENDPOINT) -> str:
    path = "/" + endpoint.strip("/")
    return f"ws://{host}:{port}{path}/websocket"


def normalize_server(server: str) -> str:
    """Accept ws://, wss://, http:// or https:// URLs and return a websocket URL."""
    p = urlparse(server)
    scheme = _SCHEMES.get(p.scheme.lower())
    if not scheme or not p.hostname:
        raise ValueError(f"not a server URL: {server!r}")
    return urlunparse(p._replace(scheme=scheme))


def resolve_settings(
    server: Optional[str] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
    endpoint: Optional[str] = None,
    username: Optional[str] = None,
    heartbeat_ms: Optional[int] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ClientSettings:
    """Flags win over environment variables, which win over defaults."""
    env = os.environ if env is None else env
    server = server or env.get("CHAT_SERVER")
    if server:
        url = normalize_server(server)
    else:
        url = websocket_url(
            host or env.get("CHAT_HOST", DEFAULT_HOST),
            int(port or env.get("CHAT_PORT", DEFAULT_PORT)),
            endpoint or env.get("CHAT_ENDPOINT", DEFAULT_ENDPOINT),
        )
    if heartbeat_ms is None:
        heartbeat_ms = int(env.get("CHAT_HEARTBEAT", DEFAULT_HEARTBEAT_MS))
    if heartbeat_ms < 0:
        raise ValueError("heart-beat interval cannot be negative")
    return ClientSettings(
        url=url,
        username=username or env.get("CHAT_USER") or None,
        heartbeat_ms=heartbeat_ms,
    )
