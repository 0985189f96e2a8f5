"""Buffered message connection over an asynchronous TCP client."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

from meshlink.asynctcp import TCP_MSS
from meshlink.buffer import ReceiveBuffer, SentBuffer

TASK_SECOND = 1.0
RETRY_DELAY = 0.1


class _Ticker:
    """Repeats a callback on the event loop; iterations can be forced or delayed."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self._interval = interval
        self._callback = callback
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._enabled = False

    def enable_delayed(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._enabled = True
        self._schedule(self._interval)

    def force_next_iteration(self) -> None:
        if self._enabled:
            self._schedule(0)

    def delay(self, seconds: float) -> None:
        if self._enabled:
            self._schedule(seconds)

    def disable(self) -> None:
        self._enabled = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self, delay: float) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._loop.call_later(delay, self._run)

    def _run(self) -> None:
        self._handle = None
        if not self._enabled:
            return
        self._callback()
        if self._enabled and self._handle is None:
            self._schedule(self._interval)


class BufferedConnection:
    """Sends and receives whole NUL separated messages over a client.

    The connection takes ownership of the client and closes it when it
    closes itself. Call ``initialize`` from within a running event loop.
    """

    def __init__(self, client) -> None:
        self._client = client
        self._connected = True
        self._receive_callback: Optional[Callable[[str], None]] = None
        self._disconnect_callback: Optional[Callable[[], None]] = None
        self._receive_buffer = ReceiveBuffer()
        self._sent_buffer = SentBuffer()
        self._sent_task = _Ticker(TASK_SECOND, self._send_step)
        self._read_task = _Ticker(TASK_SECOND, self._read_step)

    def initialize(self):
        """Start the send and receive loops and hook up the client."""
        self._sent_task.enable_delayed()
        self._read_task.enable_delayed()
        self._client.on_ack(
            lambda client, length, time: self._sent_task.force_next_iteration()
        )
        self._client.on_data(self._on_data)
        self._client.on_disconnect(lambda client: self.close())

    def close(self):
        if not self._connected:
            return
        self._sent_task.disable()
        self._read_task.disable()

        self._client.on_data(None)
        self._client.on_ack(None)
        self._client.on_disconnect(None)
        self._client.on_error(None)

        if self._client.connected():
            self._client.close()

        self._receive_buffer.clear()
        self._sent_buffer.clear()

        if self._disconnect_callback:
            self._disconnect_callback()

        self._receive_callback = None
        self._disconnect_callback = None
        self._connected = False

    def write(self, data, priority=False):
        """Queue a message; priority messages jump the queue."""
        self._sent_buffer.push(data, priority)
        self._sent_task.force_next_iteration()
        return True

    def on_disconnect(self, callback):
        self._disconnect_callback = callback

    def on_receive(self, callback):
        self._receive_callback = callback

    def connected(self):
        return self._connected

    def _on_data(self, client, data: bytes) -> None:
        self._receive_buffer.push(data)
        self._client.ack(len(data))
        self._read_task.force_next_iteration()

    def _send_step(self) -> None:
        if not self._sent_buffer.empty() and self._client.can_send():
            if self._write_next():
                self._sent_task.force_next_iteration()
            else:
                self._sent_task.delay(RETRY_DELAY)

    def _read_step(self) -> None:
        if self._receive_buffer.empty():
            return
        message = self._receive_buffer.front()
        self._receive_buffer.pop_front()
        if not self._receive_buffer.empty():
            self._read_task.force_next_iteration()
        if self._receive_callback:
            self._receive_callback(message)

    def _write_next(self) -> bool:
        if self._sent_buffer.empty():
            return False
        length = min(
            self._sent_buffer.request_length(TCP_MSS), self._client.space()
        )
        if length <= 0:
            return False
        chunk = self._sent_buffer.read(length)
        if self._client.write(chunk) != len(chunk):
            return False
        self._sent_buffer.free_read()
        self._sent_task.force_next_iteration()
        return True