from datetime import datetime, timedelta

import pytest

from app.core.exceptions import InvalidAssignment, PreconditionFailed
from app.modules.packets.lifecycle import (
    TIMELINE, PacketStatus, apply_transition, can_transition, confirm_collection,
    confirm_destination_hub, confirm_hub_pickup, confirm_origin_hub, mark_delivered
)


def test_only_edges_in_the_table_are_legal(make_packet):
    packet = make_packet(status="pending")
    assert can_transition(packet, PacketStatus.ASSIGNED)
    assert not can_transition(packet, PacketStatus.COLLECTED)
    assert not can_transition(packet, PacketStatus.DELIVERED)

    with pytest.raises(PreconditionFailed):
        apply_transition(packet, PacketStatus.IN_TRANSIT)
    assert packet.status == "pending"


def test_delivery_type_restricts_final_edges(make_packet):
    home = make_packet(status="at_destination_hub", delivery_type="delivery")
    counter = make_packet(status="at_destination_hub", delivery_type="pickup")

    assert can_transition(home, PacketStatus.OUT_FOR_DELIVERY)
    assert not can_transition(home, PacketStatus.DELIVERED)
    assert can_transition(counter, PacketStatus.DELIVERED)
    assert not can_transition(counter, PacketStatus.OUT_FOR_DELIVERY)


def test_collection_requires_the_assigned_agent(make_packet):
    packet = make_packet(status="assigned", assigned_pickup_agent_id=7)

    with pytest.raises(InvalidAssignment):
        confirm_collection(packet, agent_id=8)
    assert packet.status == "assigned"
    assert packet.collected_at is None

    confirm_collection(packet, agent_id=7, weight=6.5)
    assert packet.status == "collected"
    assert packet.weight == 6.5
    assert packet.collected_at is not None


def test_collection_rejects_non_positive_weight(make_packet):
    packet = make_packet(status="assigned", assigned_pickup_agent_id=7, weight=5.0)
    with pytest.raises(PreconditionFailed):
        confirm_collection(packet, agent_id=7, weight=0)
    assert packet.weight == 5.0


def test_destination_receipt_needs_origin_confirmation(make_packet):
    packet = make_packet(status="in_transit", confirmed_by_origin=False)
    with pytest.raises(PreconditionFailed, match="not confirmed by the origin hub"):
        confirm_destination_hub(packet)
    assert packet.status == "in_transit"

    packet.confirmed_by_origin = True
    confirm_destination_hub(packet)
    assert packet.status == "at_destination_hub"


def test_handover_requires_a_signature(make_packet):
    packet = make_packet(status="out_for_delivery")
    with pytest.raises(PreconditionFailed, match="signature"):
        mark_delivered(packet, "   ")
    assert packet.status == "out_for_delivery"

    mark_delivered(packet, "data:image/png;base64,AAAA", national_id="MW123")
    assert packet.status == "delivered"
    assert packet.signature_base64.startswith("data:image/png")
    assert packet.recipient_national_id == "MW123"


def test_mark_delivered_does_not_apply_to_hub_pickups(make_packet):
    packet = make_packet(status="at_destination_hub", delivery_type="pickup")
    with pytest.raises(PreconditionFailed):
        mark_delivered(packet, "sig")

    confirm_hub_pickup(packet, "sig")
    assert packet.status == "delivered"


def test_timestamps_are_strictly_increasing_even_with_a_frozen_clock(make_packet):
    frozen = datetime(2026, 3, 1, 10, 0, 0)
    packet = make_packet(status="assigned", assigned_pickup_agent_id=1, created_at=frozen)

    confirm_collection(packet, agent_id=1, now=frozen)
    confirm_origin_hub(packet, now=frozen - timedelta(seconds=5))

    stamps = [getattr(packet, field) for field in TIMELINE if getattr(packet, field) is not None]
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == len(stamps)


def test_pickup_request_status_follows_the_packet(make_packet):
    from app.shared.database.models import PickupRequest

    packet = make_packet(status="pending")
    packet.pickup_request = PickupRequest(pickup_address="Area 3, Lilongwe", status="pending")

    apply_transition(packet, PacketStatus.ASSIGNED)
    assert packet.pickup_request.status == "assigned"


def test_delivered_packets_are_terminal(make_packet):
    packet = make_packet(status="delivered", delivery_type="pickup")

    for target in PacketStatus:
        assert not can_transition(packet, target)

    with pytest.raises(PreconditionFailed) as excinfo:
        apply_transition(packet, PacketStatus.OUT_FOR_DELIVERY)
    assert excinfo.value.details["terminal"] is True
    assert "already delivered" in excinfo.value.detail
