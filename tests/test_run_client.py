from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fakes import RecordingView
from stompchat.config import ClientSettings
from stompchat.errors import StompConnectionError
from stompchat.run_client import build_parser, handle_line, input_loop, main, run


@pytest.fixture
def session():
    session = MagicMock()
    session.view = RecordingView()
    session.settings = ClientSettings(url="ws://h:1/ws/websocket")
    for name in ("join", "leave", "connect", "disconnect", "send_name", "send_message", "close"):
        setattr(session, name, AsyncMock(return_value=True))
    return session


class TestHandleLine:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "line, method, args",
        [
            ("/join alice", "join", ("alice",)),
            ("/JOIN  Bob Smith ", "join", ("Bob Smith",)),
            ("/leave", "leave", ()),
            ("/connect", "connect", ()),
            ("/disconnect", "disconnect", ()),
            ("/hello Ann", "send_name", ("Ann",)),
            ("hello everyone", "send_message", ("hello everyone",)),
            ("  padded  ", "send_message", ("  padded  ",)),
        ],
    )
    async def test_dispatch(self, session, line, method, args):
        assert await handle_line(session, line)
        getattr(session, method).assert_awaited_once_with(*args)

    @pytest.mark.asyncio
    async def test_quit(self, session):
        assert not await handle_line(session, "/quit")

    @pytest.mark.asyncio
    async def test_blank_line(self, session):
        assert await handle_line(session, "   ")
        session.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("line", ["/join", "/join   ", "/hello"])
    async def test_usage(self, session, line):
        assert await handle_line(session, line)
        session.join.assert_not_awaited()
        session.send_name.assert_not_awaited()
        assert session.view.calls[-1][1].startswith("Usage:")

    @pytest.mark.asyncio
    async def test_message_before_join(self, session):
        session.send_message.return_value = False
        await handle_line(session, "hi")
        assert session.view.calls == [("info", "Join the chat first with /join <name>.")]

    @pytest.mark.asyncio
    async def test_hello_before_connect(self, session):
        session.send_name.return_value = False
        await handle_line(session, "/hello Ann")
        assert session.view.calls == [("info", "Not connected. Use /connect first.")]

    @pytest.mark.asyncio
    async def test_unknown_command(self, session):
        assert await handle_line(session, "/dance")
        assert "Unknown command" in session.view.calls[-1][1]

    @pytest.mark.asyncio
    async def test_help_and_history(self, session):
        await handle_line(session, "/help")
        await handle_line(session, "/history")
        assert session.view.names() == ["info", "history"]

    @pytest.mark.asyncio
    async def test_connection_errors_are_reported(self, session):
        session.send_message.side_effect = StompConnectionError("gone")
        session.leave.side_effect = StompConnectionError("gone")
        assert await handle_line(session, "hi")
        assert await handle_line(session, "/leave")
        assert session.view.errors() == ["Send failed: gone", "/leave failed: gone"]


class TestInputLoop:
    @pytest.mark.asyncio
    async def test_runs_until_quit(self, session):
        lines = iter(["/join alice", "hi", "/quit", "never"])
        await input_loop(session, read_line=lambda: next(lines))
        session.join.assert_awaited_once_with("alice")
        session.send_message.assert_awaited_once_with("hi")

    @pytest.mark.asyncio
    async def test_stops_on_eof(self, session):
        def read_line():
            raise EOFError

        await input_loop(session, read_line=read_line)
        session.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_run_joins_configured_user_and_closes(self, session):
        session.settings.username = "alice"
        with patch("stompchat.run_client.input_loop", AsyncMock()) as loop:
            await run(session)
        loop.assert_awaited_once()
        session.join.assert_awaited_once_with("alice")
        session.close.assert_awaited_once()
        assert session.view.names()[0] == "username_page"

    @pytest.mark.asyncio
    async def test_run_survives_failed_auto_join(self, session):
        session.settings.username = "alice"
        session.join.side_effect = StompConnectionError("gone")
        with patch("stompchat.run_client.input_loop", AsyncMock()) as loop:
            await run(session)
        loop.assert_awaited_once()
        assert session.view.errors() == ["/join failed: gone"]
        session.close.assert_awaited_once()


class TestMain:
    def test_parser(self):
        args = build_parser().parse_args(["--host", "h", "--port", "9000", "--name", "al", "--no-color"])
        assert (args.host, args.port, args.name, args.no_color) == ("h", 9000, "al", True)

    def test_bad_server_exits(self, capsys):
        with pytest.raises(SystemExit):
            main(["--server", "not-a-url"])

    def test_main_runs_session(self, monkeypatch, capsys):
        monkeypatch.delenv("CHAT_SERVER", raising=False)
        with patch("stompchat.run_client.run", new=MagicMock()) as run_mock, \
                patch("stompchat.run_client.asyncio.run") as asyncio_run, \
                patch("stompchat.run_client.colorama_init"):
            main(["--host", "h", "--port", "1", "--no-color"])
        asyncio_run.assert_called_once()
        (session,) = run_mock.call_args.args
        assert session.settings.url == "ws://h:1/websocket/ws/websocket"
        assert "Goodbye." in capsys.readouterr().out
