# meshlink

Building blocks for a self-organising mesh network whose nodes exchange
JSON packages over plain TCP.

## What is in the package

- `meshlink.protocol` holds the package types `Single`, `Broadcast`,
  `NodeTree`, `NodeSyncRequest`, `NodeSyncReply`, `TimeSync` and `TimeDelay`,
  and the enums `PackageType`, `RoutingType` and `TimeType`. It also holds
  `Variant`, which keeps any package as a JSON object. A `Variant` reports a
  package's `type()`, `routing()` and `dest()`. `is_type(cls)` checks the
  package's type, `to(cls)` turns it back into a typed object, and
  `print_to(pretty=False)` serialises it.
- `meshlink.buffer` holds two buffers. `ReceiveBuffer` splits an incoming
  stream of NUL-separated messages into whole messages. `SentBuffer` is a
  queue of outgoing messages that can be read in chunks of any size. A
  priority message goes ahead of any message that has not started sending.
- `meshlink.plugin` holds base dataclasses for your own package types:
  `SinglePackage`, `BroadcastPackage` and `NeighbourPackage`. Each one carries
  its own `routing` field.
- `meshlink.asynctcp` holds `AsyncClient` and `AsyncServer`, a TCP client and
  server built on asyncio. Both report events through callbacks:
  `on_connect`, `on_disconnect`, `on_ack`, `on_error`, `on_data` and
  `on_client`.
- `meshlink.connection` holds `BufferedConnection`. It wraps an `AsyncClient`
  with a send queue and delivers whole messages to a receive callback.

## Installation

```
pip install .
```

## Protocol

```python
from meshlink.protocol import Single, Variant, RoutingType

pkg = Single(10, 20, "hello")
text = Variant(pkg).print_to()

variant = Variant(text)
assert variant.is_type(Single)
assert variant.routing() is RoutingType.SINGLE
assert variant.to(Single).msg == "hello"
```

In the following cases `Variant` raises `DeserializationError`, a subclass of
`ValueError`:

- the JSON text is empty or invalid;
- the JSON is nested more deeply than 255 levels;
- the parsed document needs more memory than the `capacity` passed to
  `Variant(text, capacity)`.

The error's `code` attribute holds one of `"EmptyInput"`, `"InvalidInput"`,
`"TooDeep"` or `"NoMemory"`.

`TimeSync` and `TimeDelay` choose the stage of the exchange from the number of
timestamps you pass. `reply(t0)` or `reply(t1, t2)` fills in the times,
advances the stage and swaps `from_id` and `dest`.

## Buffers

```python
from meshlink.buffer import ReceiveBuffer, SentBuffer

rb = ReceiveBuffer()
rb.push(b"first\0second\0")
assert rb.front() == "first"
rb.pop_front()

sb = SentBuffer()
sb.push("message")
length = sb.request_length(1024)
chunk = sb.read(length)      # b"message\0"
sb.free_read()
assert sb.empty()
```

## TCP transport

`AsyncServer.begin()` is a coroutine. Its `port` property gives the port the
server is actually bound to, which is useful when you pass port 0.

You must call `BufferedConnection.initialize()` from inside a running event
loop. After that, `write(data, priority=False)` queues a message, and the
callback set with `on_receive` gets each complete message as a string. When
the connection or the client closes, the callback set with `on_disconnect`
is called once.

## What the package does not do

The package covers the wire protocol, the message buffers and a buffered TCP
connection. It does not contain:

- a mesh node;
- routing of packages between nodes;
- layout synchronisation or time synchronisation logic;
- WiFi access-point handling;
- a command-line program.

## Running the tests

```
pip install .[test]
pytest
```