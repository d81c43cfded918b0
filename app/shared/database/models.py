# app/shared/database/models.py
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, Float,
    ForeignKey, CheckConstraint, func
)
from sqlalchemy.orm import relationship

from app.config.database import Base

# =====================================================
# MIXIN PARA TIMESTAMPS
# =====================================================
class TimestampMixin:
    """Adds created_at and updated_at columns"""
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp(), onupdate=func.current_timestamp())


# =====================================================
# HUBS
# =====================================================

class Hub(Base):
    """City-level depot. Active hub cities are the known destination cities."""
    __tablename__ = "hubs"

    id = Column(Integer, primary_key=True, index=True)
    city = Column(String(100), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    latitude = Column(Float)
    longitude = Column(Float)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.current_timestamp())


# =====================================================
# PERSONAS
# =====================================================

class Agent(Base):
    """Field worker tied to a city; collects and delivers packets"""
    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone_number = Column(String(50))
    city = Column(String(100), nullable=False, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.current_timestamp())

    # Relationships
    pickup_packets = relationship("Packet", back_populates="pickup_agent", foreign_keys="Packet.assigned_pickup_agent_id")
    delivery_packets = relationship("Packet", back_populates="delivery_agent", foreign_keys="Packet.assigned_delivery_agent_id")


class Customer(Base):
    """Sender who books a pickup"""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone_number = Column(String(50))
    city = Column(String(100))
    created_at = Column(DateTime, server_default=func.current_timestamp())

    pickup_requests = relationship("PickupRequest", back_populates="customer")


# =====================================================
# VEHICULOS
# =====================================================

class Vehicle(Base, TimestampMixin):
    """Hub dispatch resource. current_load tracks undispatched assigned weight."""
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer)
    license_plate = Column(String(50), unique=True)
    vehicle_type = Column(String(50), default='truck')
    capacity = Column(Float, nullable=False)
    current_load = Column(Float, nullable=False, default=0.0)
    current_city = Column(String(100), nullable=False, index=True)
    destination_city = Column(String(100))
    is_active = Column(Boolean, default=True)
    is_in_maintenance = Column(Boolean, default=False)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint('capacity > 0', name='ck_vehicles_capacity_positive'),
        CheckConstraint('current_load >= 0', name='ck_vehicles_load_non_negative'),
        CheckConstraint('current_load <= capacity', name='ck_vehicles_load_within_capacity'),
    )
    __mapper_args__ = {"version_id_col": version}

    # Relationships
    assigned_packets = relationship(
        "Packet", back_populates="assigned_vehicle",
        foreign_keys="Packet.assigned_vehicle_id", order_by="Packet.id"
    )

    @property
    def remaining_capacity(self) -> float:
        return (self.capacity or 0.0) - (self.current_load or 0.0)

    @property
    def is_available(self) -> bool:
        return bool(self.is_active) and not self.is_in_maintenance


# =====================================================
# PAQUETES
# =====================================================

class Packet(Base):
    """Shipment unit. Mutated only through the lifecycle transitions."""
    __tablename__ = "packets"

    id = Column(Integer, primary_key=True, index=True)
    tracking_code = Column(String(32), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=False, default='general')
    weight = Column(Float, nullable=False)
    delivery_type = Column(String(20), nullable=False, default='delivery')

    # Origen
    origin_city = Column(String(100), nullable=False, index=True)
    origin_address = Column(Text)
    origin_lat = Column(Float)
    origin_lng = Column(Float)

    # Destino
    destination_address = Column(Text, nullable=False)
    destination_hub = Column(String(100))
    destination_city = Column(String(100))
    destination_lat = Column(Float)
    destination_lng = Column(Float)

    status = Column(String(50), nullable=False, default='pending', index=True)
    confirmed_by_origin = Column(Boolean, nullable=False, default=False)

    # Asignaciones
    assigned_pickup_agent_id = Column(Integer, ForeignKey("agents.id"))
    assigned_delivery_agent_id = Column(Integer, ForeignKey("agents.id"))
    assigned_vehicle_id = Column(Integer, ForeignKey("vehicles.id"), index=True)
    dispatched_vehicle_id = Column(Integer, ForeignKey("vehicles.id"))

    # Timeline
    created_at = Column(DateTime, server_default=func.current_timestamp())
    collected_at = Column(DateTime)
    origin_hub_confirmed_at = Column(DateTime)
    dispatched_at = Column(DateTime)
    destination_hub_confirmed_at = Column(DateTime)
    out_for_delivery_at = Column(DateTime)
    delivered_at = Column(DateTime)

    # Prueba de entrega
    signature_base64 = Column(Text)
    recipient_national_id = Column(String(50))

    __table_args__ = (
        CheckConstraint('weight > 0', name='ck_packets_weight_positive'),
    )

    # Relationships
    pickup_agent = relationship("Agent", back_populates="pickup_packets", foreign_keys=[assigned_pickup_agent_id])
    delivery_agent = relationship("Agent", back_populates="delivery_packets", foreign_keys=[assigned_delivery_agent_id])
    assigned_vehicle = relationship("Vehicle", back_populates="assigned_packets", foreign_keys=[assigned_vehicle_id])
    pickup_request = relationship("PickupRequest", back_populates="packet", uselist=False)

    @property
    def origin_coordinates(self):
        if self.origin_lat is None or self.origin_lng is None:
            return None
        return {"lat": self.origin_lat, "lng": self.origin_lng}

    @property
    def destination_coordinates(self):
        if self.destination_lat is None or self.destination_lng is None:
            return None
        return {"lat": self.destination_lat, "lng": self.destination_lng}

    @property
    def has_signature(self) -> bool:
        return bool(self.signature_base64)


class PickupRequest(Base):
    """Customer request for an agent to collect a packet at the sender's address"""
    __tablename__ = "pickup_requests"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    packet_id = Column(Integer, ForeignKey("packets.id"), nullable=False, unique=True)
    pickup_address = Column(Text, nullable=False)
    status = Column(String(50), nullable=False, default='pending')
    created_at = Column(DateTime, server_default=func.current_timestamp())

    # Relationships
    customer = relationship("Customer", back_populates="pickup_requests")
    packet = relationship("Packet", back_populates="pickup_request")
