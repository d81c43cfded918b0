import pytest

from app.core.exceptions import (
    AlreadyDispatched, CapacityExceeded, CityMismatch, DestinationMismatch,
    InvalidAssignment, PreconditionFailed, UnresolvableDestination
)
from app.modules.assignments import engine
from app.modules.assignments.engine import DELIVERY_ASSIGNMENT

KNOWN = ["Lilongwe", "Blantyre", "Mzuzu"]


# ---------- pickup agents ----------

def test_pickup_agent_must_work_in_origin_city(make_packet, make_agent):
    packet = make_packet(status="pending")
    with pytest.raises(InvalidAssignment):
        engine.assign_pickup_agent(packet, make_agent(city="Mzuzu"))
    assert packet.status == "pending"
    assert packet.assigned_pickup_agent_id is None

    agent = make_agent(city=" lilongwe ")
    result = engine.assign_pickup_agent(packet, agent)
    assert result.changed
    assert packet.status == "assigned"
    assert packet.assigned_pickup_agent_id == agent.id


def test_unassign_pickup_agent_is_idempotent(make_packet, make_agent):
    packet = make_packet(status="pending")
    engine.assign_pickup_agent(packet, make_agent())

    first = engine.unassign_pickup_agent(packet)
    second = engine.unassign_pickup_agent(packet)

    assert first.changed is True
    assert second.changed is False
    assert "already unassigned" in second.message
    assert packet.status == "pending"
    assert packet.assigned_pickup_agent_id is None


# ---------- vehicles ----------

def test_capacity_is_enforced_and_message_names_the_overshoot(make_packet, make_vehicle, check_vehicle):
    vehicle = make_vehicle(capacity=10.0)
    engine.assign_to_vehicle(make_packet(weight=6.0), vehicle, KNOWN)

    heavy = make_packet(weight=5.5)
    with pytest.raises(CapacityExceeded) as excinfo:
        engine.assign_to_vehicle(heavy, vehicle, KNOWN)

    assert "exceeds vehicle capacity by 1.5 kg" in excinfo.value.detail
    assert vehicle.current_load == 6.0
    assert heavy.assigned_vehicle_id is None
    check_vehicle(vehicle)


def test_filling_a_vehicle_exactly_to_capacity_is_allowed(make_packet, make_vehicle):
    vehicle = make_vehicle(capacity=10.0)
    engine.assign_multiple_to_vehicle([make_packet(weight=4.0), make_packet(weight=6.0)], vehicle, KNOWN)
    assert vehicle.current_load == 10.0
    assert vehicle.remaining_capacity == 0.0


def test_vehicle_destination_is_set_by_the_first_packet(make_packet, make_vehicle):
    vehicle = make_vehicle()
    engine.assign_to_vehicle(make_packet(destination="Blantyre"), vehicle, KNOWN)
    assert vehicle.destination_city == "Blantyre"

    with pytest.raises(DestinationMismatch):
        engine.assign_to_vehicle(make_packet(destination="Mzuzu"), vehicle, KNOWN)
    assert len(vehicle.assigned_packets) == 1


def test_mixed_destination_batch_is_rejected_whole(make_packet, make_vehicle):
    vehicle = make_vehicle()
    batch = [make_packet(destination="Blantyre"), make_packet(destination="Mzuzu")]

    with pytest.raises(DestinationMismatch):
        engine.assign_multiple_to_vehicle(batch, vehicle, KNOWN)

    assert vehicle.assigned_packets == []
    assert vehicle.current_load == 0.0
    assert vehicle.destination_city is None


def test_destination_resolution(make_packet, make_vehicle):
    explicit = make_packet(destination_city="blantyre", destination_address="Ginnery Corner")
    assert engine.resolve_destination_city(explicit, KNOWN) == "Blantyre"

    hub_pickup = make_packet(delivery_type="pickup", destination="Mzuzu")
    assert engine.resolve_destination_city(hub_pickup, KNOWN) == "Mzuzu"

    unknown = make_packet(destination="Zomba")
    with pytest.raises(UnresolvableDestination):
        engine.assign_to_vehicle(unknown, make_vehicle(), KNOWN)


def test_packet_must_be_at_origin_hub_and_vehicle_in_origin_city(make_packet, make_vehicle):
    with pytest.raises(PreconditionFailed):
        engine.assign_to_vehicle(make_packet(status="collected"), make_vehicle(), KNOWN)

    with pytest.raises(CityMismatch):
        engine.assign_to_vehicle(make_packet(), make_vehicle(city="Mzuzu"), KNOWN)

    with pytest.raises(InvalidAssignment):
        engine.assign_to_vehicle(make_packet(), make_vehicle(is_in_maintenance=True), KNOWN)


def test_packet_on_another_vehicle_cannot_be_loaded(make_packet, make_vehicle):
    packet = make_packet()
    first, second = make_vehicle(), make_vehicle()
    engine.assign_to_vehicle(packet, first, KNOWN)

    with pytest.raises(PreconditionFailed):
        engine.assign_to_vehicle(packet, second, KNOWN)

    again = engine.assign_to_vehicle(packet, first, KNOWN)
    assert again.changed is False
    assert first.current_load == 5.0


def test_unassign_from_vehicle_restores_load_and_destination(make_packet, make_vehicle, check_vehicle):
    vehicle = make_vehicle()
    a, b = make_packet(weight=2.5), make_packet(weight=4.0)
    engine.assign_multiple_to_vehicle([a, b], vehicle, KNOWN)

    engine.unassign_from_vehicle(a)
    assert vehicle.current_load == 4.0
    assert vehicle.destination_city == "Blantyre"
    check_vehicle(vehicle)

    engine.unassign_from_vehicle(b)
    assert vehicle.current_load == 0.0
    assert vehicle.destination_city is None

    repeat = engine.unassign_from_vehicle(b)
    assert repeat.changed is False


def test_dispatch_is_all_or_nothing(make_packet, make_vehicle):
    vehicle = make_vehicle()
    ready, late = make_packet(), make_packet()
    engine.assign_multiple_to_vehicle([ready, late], vehicle, KNOWN)
    late.status = "collected"  # status drifted after loading

    with pytest.raises(PreconditionFailed) as excinfo:
        engine.dispatch_vehicle(vehicle)

    assert excinfo.value.details["blocked"] == [{"packet_id": late.id, "status": "collected"}]
    assert ready.status == "at_origin_hub"
    assert ready.dispatched_at is None
    assert len(vehicle.assigned_packets) == 2
    assert vehicle.current_load == 10.0


def test_dispatch_moves_every_packet_and_empties_the_vehicle(make_packet, make_vehicle):
    vehicle = make_vehicle()
    packets = [make_packet(weight=2.0), make_packet(weight=3.0)]
    engine.assign_multiple_to_vehicle(packets, vehicle, KNOWN)

    result = engine.dispatch_vehicle(vehicle)

    assert len(result.packets) == 2
    for packet in packets:
        assert packet.status == "in_transit"
        assert packet.confirmed_by_origin is True
        assert packet.dispatched_at is not None
        assert packet.dispatched_vehicle_id == vehicle.id
        assert packet.assigned_vehicle_id is None
    assert vehicle.assigned_packets == []
    assert vehicle.current_load == 0.0
    assert vehicle.destination_city is None

    with pytest.raises(AlreadyDispatched):
        engine.unassign_from_vehicle(packets[0])


def test_empty_vehicle_cannot_be_dispatched(make_vehicle):
    with pytest.raises(PreconditionFailed, match="no packets"):
        engine.dispatch_vehicle(make_vehicle())


# ---------- delivery agents ----------

def test_delivery_assignment_emits_exactly_one_intent(make_packet, make_agent):
    packet = make_packet(status="at_destination_hub", confirmed_by_origin=True)
    agent = make_agent(city="Blantyre")

    result = engine.assign_delivery_agent(packet, agent, KNOWN)
    assert packet.status == "out_for_delivery"
    assert packet.out_for_delivery_at is not None
    assert [(i.kind, i.packet_id) for i in result.intents] == [(DELIVERY_ASSIGNMENT, packet.id)]
    assert result.intents[0].idempotency_key == f"delivery-assignment:{packet.id}"

    same = engine.assign_delivery_agent(packet, agent, KNOWN)
    assert same.changed is False
    assert same.intents == []


def test_reassigning_delivery_keeps_status(make_packet, make_agent):
    packet = make_packet(status="at_destination_hub", confirmed_by_origin=True)
    first, second = make_agent(city="Blantyre"), make_agent(city="Blantyre")

    engine.assign_delivery_agent(packet, first, KNOWN)
    stamp = packet.out_for_delivery_at
    result = engine.assign_delivery_agent(packet, second, KNOWN)

    assert packet.status == "out_for_delivery"
    assert packet.assigned_delivery_agent_id == second.id
    assert packet.out_for_delivery_at == stamp
    assert len(result.intents) == 1


def test_delivery_agent_must_work_in_destination_city(make_packet, make_agent):
    packet = make_packet(status="at_destination_hub")
    with pytest.raises(InvalidAssignment):
        engine.assign_delivery_agent(packet, make_agent(city="Lilongwe"), KNOWN)
    assert packet.status == "at_destination_hub"


def test_hub_pickups_have_no_delivery_agent(make_packet, make_agent):
    packet = make_packet(status="at_destination_hub", delivery_type="pickup")
    with pytest.raises(PreconditionFailed):
        engine.assign_delivery_agent(packet, make_agent(city="Blantyre"), KNOWN)


def test_unassign_delivery_agent_reverts_and_is_idempotent(make_packet, make_agent):
    packet = make_packet(status="at_destination_hub")
    engine.assign_delivery_agent(packet, make_agent(city="Blantyre"), KNOWN)

    engine.unassign_delivery_agent(packet)
    assert packet.status == "at_destination_hub"
    assert packet.assigned_delivery_agent_id is None
    assert packet.out_for_delivery_at is None

    again = engine.unassign_delivery_agent(packet)
    assert again.changed is False

    with pytest.raises(PreconditionFailed):
        engine.unassign_delivery_agent(make_packet(status="in_transit"))
