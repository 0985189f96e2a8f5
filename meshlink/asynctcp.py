"""Callback driven TCP client and server on top of asyncio."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

TCP_MSS = 1024

_log = logging.getLogger(__name__)

ConnectHandler = Callable[["AsyncClient"], Any]
AckHandler = Callable[["AsyncClient", int, int], Any]
ErrorHandler = Callable[["AsyncClient", int], Any]
DataHandler = Callable[["AsyncClient", bytes], Any]


class AsyncClient:
    """A TCP connection that reports its events through callbacks.

    Only one write may be in flight at a time, and a new read is started only
    after the previous data has been acknowledged with ``ack``.
    """

    def __init__(self) -> None:
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._writing = False
        self._reading = False
        self._disconnect_called = False
        self._tasks: set[asyncio.Task] = set()
        self._connect_cb: Optional[ConnectHandler] = None
        self._disconnect_cb: Optional[ConnectHandler] = None
        self._ack_cb: Optional[AckHandler] = None
        self._error_cb: Optional[ErrorHandler] = None
        self._data_cb: Optional[DataHandler] = None

    @classmethod
    def _from_streams(cls, reader, writer) -> "AsyncClient":
        client = cls()
        client._reader = reader
        client._writer = writer
        return client

    def connect(self, host, port):
        """Start connecting; the connect or error callback reports the outcome."""
        self._spawn(self._do_connect(host, port))
        return True

    def write(self, data):
        """Send ``data``; returns its length, or 0 while a write is pending."""
        if self._writing or not self.connected():
            return 0
        payload = bytes(data)
        self._writing = True
        self._writer.write(payload)
        self._spawn(self._drain(len(payload)))
        return len(payload)

    def space(self):
        return 0 if self._writing else TCP_MSS

    def can_send(self):
        return self.space() > 0

    def ack(self, length):
        """Acknowledge received data so the next read can start."""
        self._init_read()
        return length

    def connected(self):
        return self._writer is not None and not self._writer.is_closing()

    def freeable(self):
        return not self.connected()

    def close(self):
        if self.connected():
            self._writer.close()
        if not self._disconnect_called:
            self._disconnect_called = True
            if self._disconnect_cb:
                self._disconnect_cb(self)

    def abort(self):
        self.close()

    def on_connect(self, callback):
        self._connect_cb = callback

    def on_disconnect(self, callback):
        self._disconnect_cb = callback

    def on_ack(self, callback):
        self._ack_cb = callback

    def on_error(self, callback):
        self._error_cb = callback

    def on_data(self, callback):
        self._data_cb = callback

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _do_connect(self, host, port) -> None:
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as exc:
            self._handle_error(exc)
            self.close()
            return
        if self._disconnect_called:
            writer.close()
            return
        self._reader, self._writer = reader, writer
        if self._connect_cb:
            self._connect_cb(self)
        self._init_read()

    def _init_read(self) -> None:
        if self._reader is None or self._reading or self._disconnect_called:
            return
        self._reading = True
        self._spawn(self._read_once())

    async def _read_once(self) -> None:
        try:
            data = await self._reader.read(TCP_MSS)
        except OSError as exc:
            self._reading = False
            if self._disconnect_called:
                return
            self._handle_error(exc)
            self.close()
            return
        self._reading = False
        if self._disconnect_called:
            return
        if not data:
            # End of stream is a normal disconnect, not an error.
            self.close()
            return
        if self._data_cb:
            self._data_cb(self, data)

    async def _drain(self, length: int) -> None:
        try:
            await self._writer.drain()
        except OSError as exc:
            if self._disconnect_called:
                return
            self._handle_error(exc)
            self.close()
            return
        if self._disconnect_called:
            return
        if self._ack_cb:
            self._ack_cb(self, length, 0)
        self._writing = False

    def _handle_error(self, exc: OSError) -> None:
        if self._error_cb:
            code = exc.errno if exc.errno is not None else -1
            self._error_cb(self, code)


class AsyncServer:
    """TCP server handing every accepted connection to a callback."""

    def __init__(self, port, host="0.0.0.0"):
        self._port = port
        self._host = host
        self._server: Optional[asyncio.base_events.Server] = None
        self._client_cb: Optional[ConnectHandler] = None

    @property
    def port(self) -> int:
        """The port the server listens on."""
        if self._server is not None and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._port

    def on_client(self, callback):
        self._client_cb = callback

    async def begin(self):
        """Start listening for connections."""
        self._server = await asyncio.start_server(
            self._accept, self._host, self._port, reuse_address=True
        )

    def end(self):
        """Stop accepting connections."""
        if self._server is not None:
            self._server.close()
            self._server = None

    async def _accept(self, reader, writer) -> None:
        if self._client_cb is None:
            _log.error("connection accepted without a client callback")
            writer.close()
            return
        client = AsyncClient._from_streams(reader, writer)
        self._client_cb(client)
        client._init_read()