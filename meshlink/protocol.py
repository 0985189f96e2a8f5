"""Mesh package types and their JSON wire encoding."""

from __future__ import annotations

import enum
import json
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

_SLOT_SIZE = 16
NESTING_LIMIT = 255


def json_object_size(n):
    """Memory needed for a JSON object holding ``n`` members."""
    return n * _SLOT_SIZE


def json_array_size(n):
    """Memory needed for a JSON array holding ``n`` elements."""
    return n * _SLOT_SIZE


def _int(value: Any) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def _u32(value: Any) -> int:
    return _int(value) & 0xFFFFFFFF


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


class RoutingType(enum.IntEnum):
    """How a package travels through the mesh."""

    ROUTING_ERROR = -1
    NEIGHBOUR = 0
    SINGLE = 1
    BROADCAST = 2


class PackageType(enum.IntEnum):
    """Identifiers of the built-in package types."""

    TIME_DELAY = 3
    TIME_SYNC = 4
    NODE_SYNC_REQUEST = 5
    NODE_SYNC_REPLY = 6
    CONTROL = 7
    BROADCAST = 8
    SINGLE = 9


class TimeType(enum.IntEnum):
    """Stage of a time synchronisation exchange."""

    TIME_SYNC_ERROR = -1
    TIME_SYNC_REQUEST = 0
    TIME_REQUEST = 1
    TIME_REPLY = 2


class DeserializationError(ValueError):
    """Raised when a JSON package cannot be decoded."""

    def __init__(self, code: str, detail: str = "") -> None:
        super().__init__(f"{code}: {detail}" if detail else code)
        self.code = code


class PackageInterface(ABC):
    """A package that can be written into a JSON object."""

    @abstractmethod
    def add_to(self, obj):
        """Write this package's fields into ``obj`` and return it."""

    @abstractmethod
    def json_object_size(self):
        """Memory needed to hold this package as JSON."""


@dataclass
class Single(PackageInterface):
    """Application message addressed to one node."""

    type: ClassVar[int] = PackageType.SINGLE
    from_id: int = 0
    dest: int = 0
    msg: str = ""

    @classmethod
    def from_json(cls, obj):
        return cls(
            from_id=_u32(obj.get("from")),
            dest=_u32(obj.get("dest")),
            msg=_as_str(obj.get("msg")),
        )

    def add_to(self, obj):
        obj["type"] = int(self.type)
        obj["dest"] = self.dest
        obj["from"] = self.from_id
        obj["msg"] = self.msg
        return obj

    def json_object_size(self):
        return json_object_size(4) + math.ceil(1.1 * len(self.msg))


class Broadcast(Single):
    """Application message for every node."""

    type = PackageType.BROADCAST

    def add_to(self, obj):
        super().add_to(obj)
        obj["type"] = int(self.type)
        return obj


@dataclass(eq=False)
class NodeTree(PackageInterface):
    """A node and the tree of nodes reachable through it."""

    node_id: int = 0
    root: bool = False
    subs: list[NodeTree] = field(default_factory=list)

    def __eq__(self, other):
        if not isinstance(other, NodeTree):
            return NotImplemented
        return (
            self.node_id == other.node_id
            and self.root == other.root
            and self.subs == other.subs
        )

    @classmethod
    def from_json(cls, obj):
        root = bool(obj["root"]) if "root" in obj else False
        if "nodeId" in obj:
            node_id = _u32(obj["nodeId"])
        else:
            node_id = _u32(obj.get("from"))
        subs = [
            NodeTree.from_json(sub if isinstance(sub, dict) else {})
            for sub in (obj.get("subs") or [])
        ]
        return cls(node_id=node_id, root=root, subs=subs)

    def add_to(self, obj):
        obj["nodeId"] = self.node_id
        if self.root:
            obj["root"] = True
        if self.subs:
            obj["subs"] = [NodeTree.add_to(sub, {}) for sub in self.subs]
        return obj

    def json_object_size(self):
        base = 1
        if self.root:
            base += 1
        if self.subs:
            base += 1
        size = json_object_size(base)
        if self.subs:
            size += json_array_size(len(self.subs))
        return size + sum(sub.json_object_size() for sub in self.subs)

    def to_string(self, pretty=False):
        return Variant(self).print_to(pretty)

    def clear(self):
        self.node_id = 0
        self.subs.clear()
        self.root = False


@dataclass(eq=False, init=False)
class NodeSyncRequest(NodeTree):
    """Request to exchange the layout of the mesh with a neighbour."""

    type: ClassVar[int] = PackageType.NODE_SYNC_REQUEST
    from_id: int = 0
    dest: int = 0

    def __init__(self, from_id=0, dest=0, subs=None, root=False, *, node_id=None):
        super().__init__(
            node_id=from_id if node_id is None else node_id,
            root=root,
            subs=list(subs or []),
        )
        self.from_id = from_id
        self.dest = dest

    def __eq__(self, other):
        same_tree = super().__eq__(other)
        if same_tree is NotImplemented or not isinstance(other, NodeSyncRequest):
            return same_tree
        return same_tree and self.from_id == other.from_id and self.dest == other.dest

    @classmethod
    def from_json(cls, obj):
        tree = NodeTree.from_json(obj)
        return cls(
            from_id=_u32(obj.get("from")),
            dest=_u32(obj.get("dest")),
            subs=tree.subs,
            root=tree.root,
            node_id=tree.node_id,
        )

    def add_to(self, obj):
        super().add_to(obj)
        obj["type"] = int(self.type)
        obj["dest"] = self.dest
        obj["from"] = self.from_id
        return obj

    def json_object_size(self):
        base = 4
        if self.root:
            base += 1
        if self.subs:
            base += 1
        size = json_object_size(base)
        if self.subs:
            size += json_array_size(len(self.subs))
        return size + sum(sub.json_object_size() for sub in self.subs)


class NodeSyncReply(NodeSyncRequest):
    """Reply carrying the layout of the mesh."""

    type = PackageType.NODE_SYNC_REPLY

    def add_to(self, obj):
        super().add_to(obj)
        obj["type"] = int(self.type)
        return obj


@dataclass
class TimeSyncMsg:
    """Timestamps exchanged during time synchronisation."""

    type: int = TimeType.TIME_SYNC_ERROR
    t0: int = 0
    t1: int = 0
    t2: int = 0


_TIME_TYPE_BY_COUNT = (
    TimeType.TIME_SYNC_REQUEST,
    TimeType.TIME_REQUEST,
    TimeType.TIME_REPLY,
    TimeType.TIME_REPLY,
)


@dataclass(init=False)
class TimeSync(PackageInterface):
    """Package used to synchronise the clocks of two neighbours."""

    type: ClassVar[int] = PackageType.TIME_SYNC
    from_id: int = 0
    dest: int = 0
    msg: TimeSyncMsg = field(default_factory=TimeSyncMsg)

    def __init__(self, from_id=None, dest=None, *times, msg=None):
        self.from_id = 0 if from_id is None else from_id
        self.dest = 0 if dest is None else dest
        if msg is not None:
            self.msg = msg
        elif from_id is None and dest is None and not times:
            self.msg = TimeSyncMsg()
        elif len(times) > 3:
            raise TypeError("at most three timestamps may be given")
        else:
            self.msg = TimeSyncMsg(_TIME_TYPE_BY_COUNT[len(times)], *times)

    @classmethod
    def from_json(cls, obj):
        raw = obj.get("msg")
        raw = raw if isinstance(raw, dict) else {}
        msg = TimeSyncMsg(
            _int(raw.get("type")),
            _u32(raw.get("t0")),
            _u32(raw.get("t1")),
            _u32(raw.get("t2")),
        )
        return cls(_u32(obj.get("from")), _u32(obj.get("dest")), msg=msg)

    def add_to(self, obj):
        obj["type"] = int(self.type)
        obj["dest"] = self.dest
        obj["from"] = self.from_id
        msg_obj = {"type": int(self.msg.type)}
        if self.msg.type >= 1:
            msg_obj["t0"] = self.msg.t0
        if self.msg.type >= 2:
            msg_obj["t1"] = self.msg.t1
            msg_obj["t2"] = self.msg.t2
        obj["msg"] = msg_obj
        return obj

    def json_object_size(self):
        return json_object_size(5) + json_object_size(4)

    def reply(self, *args):
        """Turn this package into the reply carrying the given time(s)."""
        if len(args) == 1:
            self.msg.t0 = args[0]
        elif len(args) == 2:
            self.msg.t1, self.msg.t2 = args
        else:
            raise TypeError("reply takes one or two timestamps")
        self.msg.type = int(self.msg.type) + 1
        self.from_id, self.dest = self.dest, self.from_id


class TimeDelay(TimeSync):
    """Package used to measure the trip delay to a node."""

    type = PackageType.TIME_DELAY

    def add_to(self, obj):
        super().add_to(obj)
        obj["type"] = int(self.type)
        return obj


def _measure(value: Any) -> tuple[int, int]:
    """Return the memory a parsed document needs and its nesting depth."""
    strings: set[str] = set()
    memory = 0
    depth = 0
    stack = [(value, 1)]
    while stack:
        item, level = stack.pop()
        if isinstance(item, dict):
            depth = max(depth, level)
            memory += json_object_size(len(item))
            for key, sub in item.items():
                strings.add(key)
                stack.append((sub, level + 1))
        elif isinstance(item, list):
            depth = max(depth, level)
            memory += json_array_size(len(item))
            stack.extend((sub, level + 1) for sub in item)
        elif isinstance(item, str):
            strings.add(item)
    memory += sum(len(s.encode("utf-8")) + 1 for s in strings)
    return memory, depth


def _parse(source, capacity):
    if isinstance(source, (bytes, bytearray)):
        try:
            text = bytes(source).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DeserializationError("InvalidInput", str(exc)) from exc
    else:
        text = source
    if not text.strip():
        raise DeserializationError("EmptyInput")
    if capacity is None:
        capacity = (
            json_object_size(5) + json_object_size(4) + 2 * len(text.encode("utf-8"))
        )
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DeserializationError("InvalidInput", str(exc)) from exc
    except RecursionError as exc:
        raise DeserializationError("TooDeep") from exc
    memory, depth = _measure(value)
    if depth > NESTING_LIMIT:
        raise DeserializationError("TooDeep")
    if memory > capacity:
        raise DeserializationError("NoMemory", f"needs {memory}, capacity {capacity}")
    return value if isinstance(value, dict) else {}


class Variant:
    """Any package, held as its JSON object."""

    def __init__(self, source, capacity=None):
        if isinstance(source, PackageInterface):
            self._obj = source.add_to({})
        elif isinstance(source, (str, bytes, bytearray)):
            self._obj = _parse(source, capacity)
        else:
            raise TypeError(f"cannot build a Variant from {source!r}")

    def is_type(self, cls):
        """Whether the package is of the given package class."""
        expected = _PACKAGE_TYPES.get(cls)
        return expected is not None and self.type() == expected

    def to(self, cls):
        """Convert the package to the given package class."""
        return cls.from_json(self._obj)

    def to_json(self):
        return self._obj

    def type(self):
        return _int(self._obj.get("type"))

    def routing(self):
        if "routing" in self._obj:
            try:
                return RoutingType(_int(self._obj["routing"]))
            except ValueError:
                return RoutingType.ROUTING_ERROR
        kind = self.type()
        if kind in (PackageType.SINGLE, PackageType.TIME_DELAY):
            return RoutingType.SINGLE
        if kind == PackageType.BROADCAST:
            return RoutingType.BROADCAST
        if kind in (
            PackageType.NODE_SYNC_REQUEST,
            PackageType.NODE_SYNC_REPLY,
            PackageType.TIME_SYNC,
        ):
            return RoutingType.NEIGHBOUR
        return RoutingType.ROUTING_ERROR

    def dest(self):
        if "dest" in self._obj:
            return _u32(self._obj["dest"])
        return 0

    def print_to(self, pretty=False):
        """Serialise the package to a JSON string."""
        if pretty:
            return json.dumps(self._obj, indent=2, ensure_ascii=False)
        return json.dumps(self._obj, separators=(",", ":"), ensure_ascii=False)


_PACKAGE_TYPES = {
    Single: PackageType.SINGLE,
    Broadcast: PackageType.BROADCAST,
    NodeSyncReply: PackageType.NODE_SYNC_REPLY,
    NodeSyncRequest: PackageType.NODE_SYNC_REQUEST,
    TimeSync: PackageType.TIME_SYNC,
    TimeDelay: PackageType.TIME_DELAY,
}