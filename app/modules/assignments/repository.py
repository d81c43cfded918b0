# app/modules/assignments/repository.py
from sqlalchemy.orm import Session

from app.core.exceptions import NotFound
from app.shared.database.models import PickupRequest

class AssignmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def packet_id_for_request(self, request_id: int) -> int:
        row = self.db.query(PickupRequest.packet_id).filter(PickupRequest.id == request_id).first()
        if row is None:
            raise NotFound(f"Pickup request {request_id} not found", details={"request_id": request_id})
        return row[0]
