# app/modules/packets/repository.py
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import NotFound
from app.shared.database.models import Customer, Packet
from .lifecycle import PacketStatus

class PacketRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_packet(self, packet_id: int) -> Packet:
        packet = self.db.query(Packet).filter(Packet.id == packet_id).first()
        if packet is None:
            raise NotFound(f"Packet {packet_id} not found", details={"packet_id": packet_id})
        return packet

    def get_by_tracking_code(self, tracking_code: str) -> Packet:
        packet = self.db.query(Packet).filter(
            Packet.tracking_code == tracking_code.strip().upper()
        ).first()
        if packet is None:
            raise NotFound(f"No packet with tracking code {tracking_code}",
                           details={"tracking_code": tracking_code})
        return packet

    def tracking_code_exists(self, tracking_code: str) -> bool:
        return self.db.query(Packet.id).filter(Packet.tracking_code == tracking_code).first() is not None

    def get_customer_by_email(self, email: str) -> Optional[Customer]:
        return self.db.query(Customer).filter(Customer.email == email.strip().lower()).first()

    def add(self, entity):
        self.db.add(entity)
        self.db.flush()
        return entity

    # ==================== LISTAS DEL AGENTE ====================

    def agent_pickup_packets(self, agent_id: int) -> List[Packet]:
        """Packets the agent still has to collect"""
        return self.db.query(Packet).options(
            joinedload(Packet.pickup_request)
        ).filter(
            Packet.assigned_pickup_agent_id == agent_id,
            Packet.status == PacketStatus.ASSIGNED.value
        ).order_by(Packet.id).all()

    def agent_delivery_packets(self, agent_id: int) -> List[Packet]:
        """Packets the agent is currently delivering"""
        return self.db.query(Packet).filter(
            Packet.assigned_delivery_agent_id == agent_id,
            Packet.status == PacketStatus.OUT_FOR_DELIVERY.value
        ).order_by(Packet.id).all()
