import pytest

from fakes import FakeBroker, RecordingView
from stompchat.config import ClientSettings
from stompchat.session import ChatSession

BROKER_URL = "ws://localhost:8080/websocket/ws/websocket"


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def view():
    return RecordingView()


@pytest.fixture
def settings():
    return ClientSettings(url=BROKER_URL, heartbeat_ms=0)


@pytest.fixture
def session(settings, view, broker):
    return ChatSession(settings, view, connector=broker)
