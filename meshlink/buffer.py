"""Buffers that split a byte stream into messages and back."""

from __future__ import annotations

from collections import deque

SEPARATOR = b"\0"


def _to_bytes(data) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


class ReceiveBuffer:
    """Collects NUL separated messages from incoming chunks of data."""

    def __init__(self) -> None:
        self._pending = bytearray()
        self._messages: deque[str] = deque()

    def push(self, data) -> None:
        """Add a chunk of received data; complete messages become available."""
        *complete, rest = _to_bytes(data).split(SEPARATOR)
        for segment in complete:
            self._pending += segment
            if self._pending:
                self._messages.append(self._pending.decode("utf-8", errors="replace"))
                self._pending.clear()
        self._pending += rest

    def front(self) -> str:
        """The oldest complete message, or an empty string."""
        return self._messages[0] if self._messages else ""

    def pop_front(self) -> None:
        if not self._messages:
            raise IndexError("pop from an empty ReceiveBuffer")
        self._messages.popleft()

    def empty(self) -> bool:
        return not self._messages

    def clear(self) -> None:
        self._messages.clear()
        self._pending.clear()


class SentBuffer:
    """Queue of outgoing messages that can be read in chunks of any length."""

    def __init__(self) -> None:
        self._messages: deque[bytes] = deque()
        self._last_read_size = 0
        self._clean = True

    def push(self, message, priority=False) -> None:
        """Queue a message; priority messages go ahead of unstarted ones."""
        data = _to_bytes(message)
        if not priority:
            self._messages.append(data)
        elif self._clean:
            self._messages.appendleft(data)
        else:
            self._messages.insert(1, data)

    def request_length(self, buffer_length) -> int:
        """How much of the oldest message fits in ``buffer_length``."""
        if not self._messages:
            return 0
        return min(buffer_length - 1, len(self._messages[0]) + 1)

    def read(self, length) -> bytes:
        """Return up to ``length`` bytes of the oldest message and its terminator."""
        if not self._messages:
            raise IndexError("read from an empty SentBuffer")
        self._last_read_size = length
        return (self._messages[0] + SEPARATOR)[:length]

    def free_read(self) -> None:
        """Drop what the last ``read`` returned."""
        if not self._messages:
            raise IndexError("free_read on an empty SentBuffer")
        front = self._messages[0]
        if self._last_read_size == len(front) + 1:
            self._messages.popleft()
            self._clean = True
        else:
            self._messages[0] = front[self._last_read_size:]
            self._clean = False
        self._last_read_size = 0

    def empty(self) -> bool:
        return not self._messages

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)