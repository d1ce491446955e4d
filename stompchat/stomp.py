import asyncio
import inspect
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .errors import FrameError, StompConnectionError
from .frames import HEARTBEAT, Frame, FrameBuffer, encode_frame

STOMP_SUBPROTOCOLS = ["v12.stomp", "v11.stomp", "v10.stomp"]
ACCEPT_VERSION = "1.2,1.1,1.0"
DEFAULT_HEARTBEAT = (10000, 10000)
CONNECT_TIMEOUT = 10.0
RECEIPT_TIMEOUT = 2.0

MessageCallback = Callable[[Frame], Union[None, Awaitable[None]]]


async def _call(callback: Callable[..., Any], *args) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def negotiate_heartbeat(client: Tuple[int, int], server_header: str) -> Tuple[float, float]:
    """Return (send_every, expect_every) in seconds; 0 disables that side."""
    cx, cy = client
    try:
        sx, sy = (int(v) for v in server_header.split(","))
    except ValueError:
        sx, sy = 0, 0
    send_every = max(cx, sy) if cx and sy else 0
    expect_every = max(cy, sx) if cy and sx else 0
    return send_every / 1000.0, expect_every / 1000.0


class Subscription:
    def __init__(self, client: "StompClient", sub_id: str, destination: str, callback: MessageCallback):
        self._client = client
        self.id = sub_id
        self.destination = destination
        self.callback = callback
        self.active = True

    async def unsubscribe(self) -> None:
        await self._client.unsubscribe(self)

    def __repr__(self):
        return f"<Subscription {self.id} {self.destination} active={self.active}>"


class StompClient:
    """STOMP 1.2 client over a single websocket connection.

    One reader task decodes frames and hands MESSAGE frames to the callback of
    their subscription. ``on_error`` receives ERROR frames sent after the
    handshake; ``on_disconnect`` is told when the connection drops without
    ``disconnect()`` having been called.
    """

    def __init__(
        self,
        url: str,
        connector: Optional[Callable[..., Awaitable[Any]]] = None,
        heartbeat: Tuple[int, int] = DEFAULT_HEARTBEAT,
        connect_timeout: float = CONNECT_TIMEOUT,
        on_error: Optional[Callable[[Frame], Any]] = None,
        on_disconnect: Optional[Callable[[str], Any]] = None,
    ):
        self.url = url
        self.heartbeat = heartbeat
        self.connect_timeout = connect_timeout
        self.on_error = on_error
        self.on_disconnect = on_disconnect
        self.version: Optional[str] = None
        self._connector = connector or websockets.connect
        self._ws = None
        self._buffer = FrameBuffer()
        self._connected = False
        self._closing = False
        self._close_reason: Optional[str] = None
        self._connected_future: Optional[asyncio.Future] = None
        self._pending_receipts: Dict[str, asyncio.Future] = {}
        self._subscriptions: Dict[str, Subscription] = {}
        self._sub_ids = itertools.count()
        self._receipt_ids = itertools.count()
        self._reader_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._last_sent = 0.0
        self._last_recv = 0.0

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def subscriptions(self) -> Dict[str, Subscription]:
        return dict(self._subscriptions)

    async def _open_socket(self):
        return await self._connector(self.url, subprotocols=STOMP_SUBPROTOCOLS)

    async def connect(self, headers: Optional[Dict[str, str]] = None) -> Frame:
        if self._connected:
            raise StompConnectionError(f"already connected to {self.url}")
        loop = asyncio.get_running_loop()
        try:
            self._ws = await asyncio.wait_for(self._open_socket(), self.connect_timeout)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise StompConnectionError(f"could not open {self.url}: {e!r}") from e

        self._buffer = FrameBuffer()
        self._closing = False
        self._close_reason = None
        self._last_recv = loop.time()
        self._connected_future = loop.create_future()
        self._reader_task = asyncio.create_task(self._read_loop())

        cx, cy = self.heartbeat
        connect_headers = {"accept-version": ACCEPT_VERSION, "heart-beat": f"{cx},{cy}"}
        connect_headers.update(headers or {})
        try:
            await self._write(Frame("CONNECT", connect_headers))
            frame = await asyncio.wait_for(self._connected_future, self.connect_timeout)
        except asyncio.TimeoutError:
            await self._teardown("timed out waiting for CONNECTED")
            raise StompConnectionError(f"no CONNECTED frame from {self.url}") from None
        except StompConnectionError:
            await self._teardown("handshake failed")
            raise
        finally:
            self._connected_future = None

        self._connected = True
        self.version = frame.headers.get("version", "1.0")
        send_every, expect_every = negotiate_heartbeat(
            self.heartbeat, frame.headers.get("heart-beat", "0,0")
        )
        if send_every or expect_every:
            self._heartbeat_task = asyncio.create_task(
                self._heartbeat_loop(send_every, expect_every)
            )
        logging.info(
            "Connected to %s (STOMP %s, heart-beat out=%ss in=%ss)",
            self.url, self.version, send_every, expect_every,
        )
        return frame

    async def subscribe(
        self,
        destination: str,
        callback: MessageCallback,
        headers: Optional[Dict[str, str]] = None,
    ) -> Subscription:
        self._require_connected()
        sub = Subscription(self, f"sub-{next(self._sub_ids)}", destination, callback)
        frame_headers = {"id": sub.id, "destination": destination}
        frame_headers.update(headers or {})
        # registered first so a MESSAGE racing the SUBSCRIBE is not dropped
        self._subscriptions[sub.id] = sub
        try:
            await self._write(Frame("SUBSCRIBE", frame_headers))
        except StompConnectionError:
            self._subscriptions.pop(sub.id, None)
            sub.active = False
            raise
        logging.info("Subscribed %s to %s", sub.id, destination)
        return sub

    async def unsubscribe(self, sub: Subscription) -> None:
        if self._subscriptions.pop(sub.id, None) is None:
            sub.active = False
            return
        sub.active = False
        if self._connected:
            await self._write(Frame("UNSUBSCRIBE", {"id": sub.id}))
        logging.info("Unsubscribed %s from %s", sub.id, sub.destination)

    async def send(self, destination: str, body: str = "", headers: Optional[Dict[str, str]] = None) -> None:
        self._require_connected()
        frame_headers = {"destination": destination}
        frame_headers.update(headers or {})
        await self._write(Frame("SEND", frame_headers, body))

    async def disconnect(self) -> None:
        if not self._connected:
            await self._teardown("disconnected")
            return
        self._closing = True
        receipt_id = f"disconnect-{next(self._receipt_ids)}"
        fut = asyncio.get_running_loop().create_future()
        self._pending_receipts[receipt_id] = fut
        try:
            await self._write(Frame("DISCONNECT", {"receipt": receipt_id}))
            await asyncio.wait_for(fut, RECEIPT_TIMEOUT)
        except (StompConnectionError, asyncio.TimeoutError):
            logging.info("No receipt for DISCONNECT from %s", self.url)
        finally:
            self._pending_receipts.pop(receipt_id, None)
            await self._teardown("disconnected")
        logging.info("Disconnected from %s", self.url)

    def _require_connected(self) -> None:
        if not self._connected:
            raise StompConnectionError(f"not connected to {self.url}")

    async def _write(self, frame: Frame) -> None:
        if self._ws is None:
            raise StompConnectionError(f"no connection to {self.url}")
        data = encode_frame(frame)
        logging.debug(">>> %s", data.rstrip("\x00"))
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            raise StompConnectionError(f"connection to {self.url} closed: {e}") from e
        self._last_sent = asyncio.get_running_loop().time()

    async def _read_loop(self) -> None:
        loop = asyncio.get_running_loop()
        reason = "connection closed by broker"
        try:
            async for raw in self._ws:
                self._last_recv = loop.time()
                for frame in self._buffer.feed(raw):
                    await self._dispatch(frame)
        except ConnectionClosed as e:
            reason = f"connection closed: {e}"
        except (FrameError, StompConnectionError) as e:
            reason = str(e)
        except Exception as e:
            logging.exception("Error in STOMP receive loop for %s", self.url)
            reason = f"receive loop failed: {e!r}"
        await self._close_socket()
        await self._connection_lost(self._close_reason or reason)

    async def _dispatch(self, frame: Frame) -> None:
        logging.debug("<<< %s %s", frame.command, frame.headers)
        if frame.command == "CONNECTED":
            if self._connected_future and not self._connected_future.done():
                self._connected_future.set_result(frame)
        elif frame.command == "MESSAGE":
            sub = self._subscriptions.get(frame.headers.get("subscription", ""))
            if sub is None:
                logging.info(
                    "Dropping MESSAGE for unknown subscription %s",
                    frame.headers.get("subscription"),
                )
                return
            try:
                await _call(sub.callback, frame)
            except Exception:
                logging.exception("Callback for %s failed", sub.destination)
        elif frame.command == "RECEIPT":
            fut = self._pending_receipts.get(frame.headers.get("receipt-id", ""))
            if fut and not fut.done():
                fut.set_result(frame)
        elif frame.command == "ERROR":
            message = frame.headers.get("message") or frame.body or "ERROR frame"
            if self._connected_future and not self._connected_future.done():
                self._connected_future.set_exception(
                    StompConnectionError(f"broker refused connection: {message}")
                )
            elif self.on_error:
                await _call(self.on_error, frame)
            raise StompConnectionError(f"broker error: {message}")
        else:
            logging.info("Ignoring unexpected %s frame", frame.command)

    async def _heartbeat_loop(self, send_every: float, expect_every: float) -> None:
        loop = asyncio.get_running_loop()
        tick = min(v for v in (send_every, expect_every) if v) / 2
        while self._connected:
            await asyncio.sleep(tick)
            now = loop.time()
            if expect_every and now - self._last_recv > 2 * expect_every:
                logging.warning(
                    "No data from %s for %.1fs; closing", self.url, now - self._last_recv
                )
                self._close_reason = "heart-beat timeout"
                await self._close_socket()
                return
            if send_every and now - self._last_sent >= send_every:
                try:
                    await self._ws.send(HEARTBEAT)
                except ConnectionClosed:
                    return
                self._last_sent = now

    async def _close_socket(self) -> None:
        if self._ws is None:
            return
        try:
            await self._ws.close()
        except (OSError, WebSocketException) as e:
            logging.debug("Error closing socket for %s: %r", self.url, e)

    async def _connection_lost(self, reason: str) -> None:
        was_connected = self._connected
        self._connected = False
        if self._connected_future and not self._connected_future.done():
            self._connected_future.set_exception(StompConnectionError(reason))
        for fut in self._pending_receipts.values():
            if not fut.done():
                fut.set_exception(StompConnectionError(reason))
        for sub in self._subscriptions.values():
            sub.active = False
        self._subscriptions.clear()
        task = self._heartbeat_task
        self._heartbeat_task = None
        if task and task is not asyncio.current_task():
            task.cancel()
        if was_connected and not self._closing:
            logging.warning("Lost connection to %s: %s", self.url, reason)
            if self.on_disconnect:
                await _call(self.on_disconnect, reason)

    async def _teardown(self, reason: str) -> None:
        self._closing = True
        for task in (self._heartbeat_task, self._reader_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._reader_task = None
        await self._close_socket()
        await self._connection_lost(reason)
        self._ws = None
