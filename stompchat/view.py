import sys
from abc import ABC, abstractmethod
from collections import deque
from typing import List, Optional, TextIO

from colorama import Back, Fore, Style

SCROLLBACK = 500

# Terminal stand-ins for the avatar palette
_AVATAR_BACKGROUNDS = {
    "#2196f3": Back.BLUE,
    "#32c787": Back.GREEN,
    "#00bcd4": Back.CYAN,
    "#ff5652": Back.RED,
    "#ffc107": Back.YELLOW,
    "#ff85af": Back.MAGENTA,
    "#ff9800": Back.LIGHTRED_EX,
    "#39bbb0": Back.LIGHTCYAN_EX,
}


class ChatView(ABC):
    """What the session needs from whatever draws the chat."""

    @abstractmethod
    def show_username_page(self) -> None: ...

    @abstractmethod
    def show_chat_page(self) -> None: ...

    @abstractmethod
    def hide_connecting(self) -> None: ...

    @abstractmethod
    def set_connected(self, connected: bool) -> None: ...

    @abstractmethod
    def show_greeting(self, text: str) -> None: ...

    @abstractmethod
    def clear_greetings(self) -> None: ...

    @abstractmethod
    def show_event(self, text: str) -> None: ...

    @abstractmethod
    def show_chat(self, sender: str, initial: str, color: str, text: str) -> None: ...

    @abstractmethod
    def show_error(self, text: str) -> None: ...

    @abstractmethod
    def show_info(self, text: str) -> None: ...

    @abstractmethod
    def show_history(self) -> None: ...


class TerminalView(ChatView):
    def __init__(self, stream: Optional[TextIO] = None, color: bool = True):
        self.stream = stream or sys.stdout
        self.color = color
        self.scrollback = deque(maxlen=SCROLLBACK)
        self.page = "username"
        self.connecting = False
        self.greetings: List[str] = []

    def paint(self, text: str, *styles: str) -> str:
        if not self.color or not styles:
            return text
        return "".join(styles) + text + Style.RESET_ALL

    def _display(self, text: str, *styles: str) -> None:
        self.scrollback.append(text)
        print(self.paint(text, *styles), file=self.stream, flush=True)

    def history(self) -> List[str]:
        return list(self.scrollback)

    def show_username_page(self) -> None:
        self.page = "username"
        self._display("Type /join <name> to enter the chat room.", Fore.YELLOW)

    def show_chat_page(self) -> None:
        self.page = "chat"
        self.connecting = True
        self._display("Connecting...", Style.DIM)

    def hide_connecting(self) -> None:
        self.connecting = False

    def set_connected(self, connected: bool) -> None:
        self.clear_greetings()
        if connected:
            self._display("Connected. Use /hello <name> to get a greeting.", Fore.GREEN)
        else:
            self._display("Disconnected.", Fore.YELLOW)

    def show_greeting(self, text: str) -> None:
        self.greetings.append(text)
        self._display(text, Fore.GREEN, Style.BRIGHT)

    def clear_greetings(self) -> None:
        self.greetings.clear()

    def show_event(self, text: str) -> None:
        self._display(f"-- {text}", Fore.YELLOW)

    def show_chat(self, sender: str, initial: str, color: str, text: str) -> None:
        line = f"[{initial}] {sender}: {text}"
        self.scrollback.append(line)
        if self.color:
            background = _AVATAR_BACKGROUNDS.get(color.lower(), Back.WHITE)
            avatar = self.paint(f" {initial} ", background, Fore.WHITE, Style.BRIGHT)
            line = f"{avatar} {self.paint(sender, Style.BRIGHT)}: {text}"
        print(line, file=self.stream, flush=True)

    def show_error(self, text: str) -> None:
        self._display(text, Fore.RED)

    def show_info(self, text: str) -> None:
        self._display(text)

    def show_history(self) -> None:
        print(f"--- History (last {SCROLLBACK}) ---", file=self.stream)
        for line in self.history():
            print(line, file=self.stream)
        print("--- end history ---", file=self.stream, flush=True)
