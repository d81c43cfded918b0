import logging

import pytest
from fastapi import BackgroundTasks
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import CapacityExceeded, ConcurrentModification, NotFound
from app.modules.dispatch.coordinator import AssignDeliveryAgent, AssignToVehicle, UnassignFromVehicle
from app.modules.dispatch.service import DispatchService
from app.modules.proximity.matcher import arrival_latch
from app.shared.database.models import Packet, Vehicle


@pytest.fixture
def stored_packet(db_session, world):
    def _store(status="at_origin_hub", weight=5.0, destination="Blantyre", **kwargs):
        packet = Packet(
            tracking_code=f"PKT-{db_session.query(Packet).count() + 1:010X}",
            description="Maize flour",
            weight=weight,
            origin_city="Lilongwe",
            destination_address=f"Limbe Market, {destination}",
            status=status,
            **kwargs
        )
        db_session.add(packet)
        db_session.commit()
        return packet
    return _store


def test_vehicle_rows_are_versioned(session_factory, world):
    first, second = session_factory(), session_factory()
    try:
        stale = first.get(Vehicle, world.truck_id)
        fresh = second.get(Vehicle, world.truck_id)

        fresh.current_load = 20.0
        second.commit()

        stale.current_load = 30.0
        with pytest.raises(StaleDataError):
            first.commit()
    finally:
        first.rollback()
        first.close()
        second.close()


def test_stale_vehicle_becomes_concurrent_modification(db_session, world, stored_packet, monkeypatch):
    packet = stored_packet()
    service = DispatchService(db_session)

    def lost_race(command):
        raise StaleDataError("UPDATE statement on table 'vehicles' expected to update 1 row(s); 0 were matched.")

    monkeypatch.setattr(service.coordinator, "apply", lost_race)

    with pytest.raises(ConcurrentModification) as excinfo:
        service.execute(AssignToVehicle(packet_ids=(packet.id,), vehicle_id=world.truck_id))
    assert excinfo.value.status_code == 409


def test_rejected_command_leaves_the_database_untouched(db_session, world, stored_packet):
    light, heavy = stored_packet(weight=6.0), stored_packet(weight=5.0)
    service = DispatchService(db_session)
    service.execute(AssignToVehicle(packet_ids=(light.id,), vehicle_id=world.van_id))

    with pytest.raises(CapacityExceeded):
        service.execute(AssignToVehicle(packet_ids=(heavy.id,), vehicle_id=world.van_id))

    db_session.expire_all()
    van = db_session.get(Vehicle, world.van_id)
    assert van.current_load == 6.0
    assert db_session.get(Packet, heavy.id).assigned_vehicle_id is None


def test_unassigning_an_unknown_packet_is_not_found(db_session, world):
    with pytest.raises(NotFound):
        DispatchService(db_session).execute(UnassignFromVehicle(packet_id=4242))


def test_intents_are_queued_after_commit(db_session, world, stored_packet):
    packet = stored_packet(status="at_destination_hub", confirmed_by_origin=True)
    tasks = BackgroundTasks()

    outcome = DispatchService(db_session).execute(
        AssignDeliveryAgent(packet_id=packet.id, agent_id=world.delivery_agent_id), tasks
    )

    assert outcome.changed
    assert len(tasks.tasks) == 1
    assert tasks.tasks[0].args == (outcome.intents,)

    repeat = DispatchService(db_session).execute(
        AssignDeliveryAgent(packet_id=packet.id, agent_id=world.delivery_agent_id), tasks
    )
    assert repeat.changed is False
    assert len(tasks.tasks) == 1


def test_intents_without_a_runner_are_logged(db_session, world, stored_packet, caplog):
    packet = stored_packet(status="at_destination_hub", confirmed_by_origin=True)

    with caplog.at_level(logging.WARNING, logger="app.modules.dispatch.service"):
        DispatchService(db_session).execute(
            AssignDeliveryAgent(packet_id=packet.id, agent_id=world.delivery_agent_id)
        )

    assert "dropped" in caplog.text


def test_changed_outcome_releases_arrival_latches(db_session, world, stored_packet):
    packet = stored_packet(status="at_destination_hub", confirmed_by_origin=True)
    arrival_latch.check(world.delivery_agent_id, packet.id, (-15.7861, 35.0058), (-15.7861, 35.0058), 100.0)
    assert arrival_latch.is_latched(world.delivery_agent_id, packet.id)

    DispatchService(db_session).execute(
        AssignDeliveryAgent(packet_id=packet.id, agent_id=world.delivery_agent_id)
    )

    assert not arrival_latch.is_latched(world.delivery_agent_id, packet.id)
