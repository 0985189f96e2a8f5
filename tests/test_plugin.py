from dataclasses import dataclass

from meshlink.plugin import BroadcastPackage, NeighbourPackage, SinglePackage
from meshlink.protocol import RoutingType, Variant, json_object_size


@dataclass
class SensorPackage(SinglePackage):
    temperature: float = 0.0

    no_json_fields = 5

    @classmethod
    def from_json(cls, obj):
        pkg = super().from_json(obj)
        pkg.temperature = float(obj.get("temperature", 0.0))
        return pkg

    def add_to(self, obj):
        super().add_to(obj)
        obj["temperature"] = self.temperature
        return obj


def test_single_package_defaults_to_single_routing():
    pkg = SinglePackage(20)
    assert pkg.routing == RoutingType.SINGLE
    assert pkg.type == 20


def test_single_package_json_fields():
    obj = SinglePackage(21, from_id=1, dest=2).add_to({})
    assert obj == {"from": 1, "dest": 2, "routing": int(RoutingType.SINGLE), "type": 21}


def test_single_package_round_trip_through_variant():
    pkg = SinglePackage(22, from_id=101, dest=202)
    variant = Variant(pkg)
    assert variant.type() == 22
    assert variant.dest() == 202
    assert variant.routing() == RoutingType.SINGLE
    assert variant.to(SinglePackage) == pkg


def test_single_package_round_trip_through_string():
    pkg = SinglePackage(23, from_id=7, dest=8)
    text = Variant(pkg).print_to()
    assert Variant(text).to(SinglePackage) == pkg


def test_broadcast_package_has_no_destination():
    pkg = BroadcastPackage(24, from_id=5)
    obj = pkg.add_to({})
    assert "dest" not in obj
    variant = Variant(pkg)
    assert variant.routing() == RoutingType.BROADCAST
    assert variant.dest() == 0
    assert variant.to(BroadcastPackage) == pkg


def test_neighbour_package_routing():
    pkg = NeighbourPackage(25, from_id=1, dest=0)
    assert pkg.routing == RoutingType.NEIGHBOUR
    variant = Variant(pkg)
    assert variant.routing() == RoutingType.NEIGHBOUR
    back = variant.to(NeighbourPackage)
    assert back.routing == RoutingType.NEIGHBOUR
    assert back == pkg


def test_from_json_takes_routing_from_document():
    back = NeighbourPackage.from_json({"type": 30, "from": 1, "dest": 2, "routing": 2})
    assert back.routing == RoutingType.BROADCAST


def test_missing_routing_reads_as_neighbour():
    back = SinglePackage.from_json({"type": 30, "from": 1, "dest": 2})
    assert back.routing == RoutingType.NEIGHBOUR


def test_invalid_routing_reads_as_error():
    back = SinglePackage.from_json({"type": 30, "routing": 42})
    assert back.routing == RoutingType.ROUTING_ERROR


def test_json_object_size_follows_field_count():
    assert SinglePackage(20).json_object_size() == json_object_size(4)
    assert BroadcastPackage(20).json_object_size() == json_object_size(3)
    assert SensorPackage(20).json_object_size() == json_object_size(5)


def test_subclass_with_extra_field_round_trips():
    pkg = SensorPackage(31, from_id=3, dest=4, temperature=21.5)
    back = Variant(Variant(pkg).print_to()).to(SensorPackage)
    assert back == pkg
    assert back.temperature == 21.5