import argparse
import asyncio
import logging
from typing import Callable, List, Optional

from colorama import Fore, Style
from colorama import init as colorama_init

from .config import resolve_settings
from .errors import StompError
from .session import ChatSession
from .view import TerminalView

HELP_COMMAND = "/help"
CONNECT_COMMAND = "/connect"
DISCONNECT_COMMAND = "/disconnect"
HELLO_COMMAND = "/hello"
JOIN_COMMAND = "/join"
LEAVE_COMMAND = "/leave"
HISTORY_COMMAND = "/history"
CLOSE_COMMAND = "/quit"

HELP_TEXT = """Commands:
  /join <name>     - Join the chat room as <name>
  /leave           - Leave the chat room
  /connect         - Open the greeting connection
  /disconnect      - Close the greeting connection
  /hello <name>    - Ask the server to greet <name>
  /history         - Show recent lines
  /help            - Show this help
  /quit            - Exit
Anything else is sent to the chat room."""


def _split(line: str):
    cmd, _, rest = line.partition(" ")
    return cmd.lower(), rest.strip()


async def handle_line(session: ChatSession, line: str) -> bool:
    """Run one line of input. Returns False when the client should exit."""
    view = session.view
    if not line.strip():
        return True
    if not line.startswith("/"):
        try:
            if not await session.send_message(line):
                view.show_info("Join the chat first with /join <name>.")
        except StompError as e:
            view.show_error(f"Send failed: {e}")
        return True

    cmd, arg = _split(line.strip())
    try:
        if cmd == JOIN_COMMAND:
            if not arg:
                view.show_info("Usage: /join <name>")
            else:
                await session.join(arg)
        elif cmd == LEAVE_COMMAND:
            await session.leave()
        elif cmd == CONNECT_COMMAND:
            await session.connect()
        elif cmd == DISCONNECT_COMMAND:
            await session.disconnect()
        elif cmd == HELLO_COMMAND:
            if not arg:
                view.show_info("Usage: /hello <name>")
            elif not await session.send_name(arg):
                view.show_info("Not connected. Use /connect first.")
        elif cmd == HISTORY_COMMAND:
            view.show_history()
        elif cmd == HELP_COMMAND:
            view.show_info(HELP_TEXT)
        elif cmd == CLOSE_COMMAND:
            return False
        else:
            view.show_info(f"Unknown command: {cmd} (try /help)")
    except StompError as e:
        logging.info("Command %s failed: %s", cmd, e)
        view.show_error(f"{cmd} failed: {e}")
    return True


async def input_loop(session: ChatSession, read_line: Optional[Callable[[], str]] = None) -> None:
    loop = asyncio.get_running_loop()
    read_line = read_line or input
    while True:
        try:
            line = await loop.run_in_executor(None, read_line)
        except EOFError:
            return
        if not await handle_line(session, line):
            return


async def run(session: ChatSession) -> None:
    session.view.show_username_page()
    if session.settings.username:
        await handle_line(session, f"{JOIN_COMMAND} {session.settings.username}")
    try:
        await input_loop(session)
    finally:
        await session.close()


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Chat room client over STOMP/WebSocket")
    ap.add_argument("--server", help="Broker websocket URL, e.g. ws://host:8080/websocket/ws/websocket")
    ap.add_argument("--host", help="Broker host (if --server not given)")
    ap.add_argument("--port", type=int, help="Broker port (default 8080)")
    ap.add_argument("--endpoint", help="SockJS endpoint path (default /websocket/ws)")
    ap.add_argument("--name", help="Join the chat room with this name on start")
    ap.add_argument("--heartbeat", type=int, help="Heart-beat interval in ms, 0 disables (default 10000)")
    ap.add_argument("--no-color", action="store_true", help="Plain output")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log connection events")
    ap.add_argument("--debug", action="store_true", help="Log every frame")
    return ap


def _banner(view: TerminalView) -> None:
    rule = "=" * 60
    for text, styles in (
        (rule, (Fore.CYAN,)),
        ("STOMP Chat Client", (Fore.CYAN, Style.BRIGHT)),
        (rule, (Fore.CYAN,)),
    ):
        print(view.paint(text, *styles), file=view.stream)
    print(HELP_TEXT, file=view.stream)
    print(view.paint(rule, Fore.CYAN), file=view.stream)


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.debug else logging.INFO if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")

    try:
        settings = resolve_settings(
            server=args.server,
            host=args.host,
            port=args.port,
            endpoint=args.endpoint,
            username=args.name,
            heartbeat_ms=args.heartbeat,
        )
    except ValueError as e:
        parser.error(str(e))

    colorama_init()
    view = TerminalView(color=not args.no_color)
    _banner(view)
    logging.info("Using broker %s", settings.url)
    try:
        asyncio.run(run(ChatSession(settings, view)))
    except KeyboardInterrupt:
        pass
    print("Goodbye.")


if __name__ == "__main__":
    main()
