import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.database import Base, get_db
from app.core.auth.service import AuthService
from app.main import app
from app.modules.proximity.matcher import arrival_latch
from app.shared.database.models import Agent, Hub, Packet, Vehicle
from app.shared.services.notification_client import notification_client


@pytest.fixture(autouse=True)
def reset_arrival_latch():
    arrival_latch.clear()
    yield
    arrival_latch.clear()


# ---------- in-memory objects for the pure rule tests ----------

@pytest.fixture
def make_agent():
    counter = {"id": 100}

    def _make(city="Lilongwe", **kwargs):
        counter["id"] += 1
        fields = dict(id=counter["id"], name=f"Agent {counter['id']}", email=f"agent{counter['id']}@example.com",
                      city=city, is_active=True)
        fields.update(kwargs)
        return Agent(**fields)
    return _make


@pytest.fixture
def make_vehicle():
    counter = {"id": 0}

    def _make(capacity=100.0, city="Lilongwe", **kwargs):
        counter["id"] += 1
        fields = dict(id=counter["id"], make="Isuzu", model="NPR", license_plate=f"LL {counter['id']:04d}",
                      capacity=capacity, current_load=0.0, current_city=city, destination_city=None,
                      is_active=True, is_in_maintenance=False)
        fields.update(kwargs)
        return Vehicle(**fields)
    return _make


@pytest.fixture
def make_packet():
    counter = {"id": 0}

    def _make(status="at_origin_hub", weight=5.0, origin="Lilongwe", destination="Blantyre",
              delivery_type="delivery", **kwargs):
        counter["id"] += 1
        fields = dict(
            id=counter["id"],
            tracking_code=f"PKT-{counter['id']:010X}",
            description="Box of books",
            category="general",
            weight=weight,
            delivery_type=delivery_type,
            origin_city=origin,
            destination_address=f"Area {counter['id']}, {destination}",
            destination_hub=destination if delivery_type == "pickup" else None,
            status=status,
            confirmed_by_origin=False,
        )
        fields.update(kwargs)
        return Packet(**fields)
    return _make


@pytest.fixture
def check_vehicle():
    """Load equals the weight still on board, within capacity; an empty vehicle has no destination"""
    def _check(vehicle):
        on_board = sum(p.weight for p in vehicle.assigned_packets if p.status == "at_origin_hub")
        load = vehicle.current_load or 0.0
        assert load == pytest.approx(on_board)
        assert load <= vehicle.capacity
        if not vehicle.assigned_packets:
            assert vehicle.destination_city is None
    return _check


# ---------- database and HTTP client ----------

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sent_notifications(monkeypatch):
    sent = []

    async def fake_send(intent):
        sent.append(intent)
        return True

    monkeypatch.setattr(notification_client, "send", fake_send)
    return sent


@pytest.fixture
def headers():
    def _headers(user_id, role, city=None):
        token = AuthService.create_access_token({"user_id": user_id, "role": role, "city": city})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def world(db_session):
    """Three hubs, agents on both ends of the Lilongwe-Blantyre line and two trucks in Lilongwe"""
    for city, lat, lng in (("Lilongwe", -13.9626, 33.7741), ("Blantyre", -15.7861, 35.0058),
                           ("Mzuzu", -11.4656, 34.0207)):
        db_session.add(Hub(city=city, name=f"{city} Hub", latitude=lat, longitude=lng, is_active=True))

    pickup_agent = Agent(name="Chikondi Banda", email="chikondi@example.com", city="Lilongwe", is_active=True)
    delivery_agent = Agent(name="Thoko Phiri", email="thoko@example.com", city="Blantyre", is_active=True)
    backup_agent = Agent(name="Kondwani Mwale", email="kondwani@example.com", city="Blantyre", is_active=True)
    mzuzu_agent = Agent(name="Grace Nyirenda", email="grace@example.com", city="Mzuzu", is_active=True)
    truck = Vehicle(make="Isuzu", model="NPR", license_plate="LL 1001", capacity=100.0, current_load=0.0,
                    current_city="Lilongwe", is_active=True, is_in_maintenance=False)
    van = Vehicle(make="Toyota", model="Hiace", license_plate="LL 2002", capacity=10.0, current_load=0.0,
                  current_city="Lilongwe", is_active=True, is_in_maintenance=False)
    db_session.add_all([pickup_agent, delivery_agent, backup_agent, mzuzu_agent, truck, van])
    db_session.commit()

    return SimpleNamespace(
        pickup_agent_id=pickup_agent.id,
        delivery_agent_id=delivery_agent.id,
        backup_agent_id=backup_agent.id,
        mzuzu_agent_id=mzuzu_agent.id,
        truck_id=truck.id,
        van_id=van.id,
    )
