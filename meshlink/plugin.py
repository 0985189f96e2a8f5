"""Base classes for user defined package types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

from meshlink.protocol import PackageInterface, RoutingType, json_object_size


def _int(value: Any) -> int:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    if isinstance(value, bool):
        return int(value)
    return 0


def _u32(value: Any) -> int:
    return _int(value) & 0xFFFFFFFF


def _routing(value: Any) -> RoutingType:
    try:
        return RoutingType(_int(value))
    except ValueError:
        return RoutingType.ROUTING_ERROR


@dataclass
class SinglePackage(PackageInterface):
    """Package routed to one destination node.

    Subclasses that add JSON fields raise ``no_json_fields`` accordingly and
    extend ``add_to`` and ``from_json``.
    """

    type: int
    from_id: int = 0
    dest: int = 0
    routing: RoutingType = RoutingType.SINGLE

    no_json_fields: ClassVar[int] = 4

    @classmethod
    def from_json(cls, obj):
        return cls(
            type=_int(obj.get("type")),
            from_id=_u32(obj.get("from")),
            dest=_u32(obj.get("dest")),
            routing=_routing(obj.get("routing", 0)),
        )

    def add_to(self, obj):
        obj["from"] = self.from_id
        obj["dest"] = self.dest
        obj["routing"] = int(self.routing)
        obj["type"] = self.type
        return obj

    def json_object_size(self):
        return json_object_size(self.no_json_fields)


@dataclass
class BroadcastPackage(PackageInterface):
    """Package delivered to every node in the mesh."""

    type: int
    from_id: int = 0
    routing: RoutingType = RoutingType.BROADCAST

    no_json_fields: ClassVar[int] = 3

    @classmethod
    def from_json(cls, obj):
        return cls(
            type=_int(obj.get("type")),
            from_id=_u32(obj.get("from")),
            routing=_routing(obj.get("routing", 0)),
        )

    def add_to(self, obj):
        obj["from"] = self.from_id
        obj["routing"] = int(self.routing)
        obj["type"] = self.type
        return obj

    def json_object_size(self):
        return json_object_size(self.no_json_fields)


@dataclass
class NeighbourPackage(SinglePackage):
    """Package handled by the direct neighbour it is sent to."""

    routing: RoutingType = RoutingType.NEIGHBOUR