import uuid

from sqlalchemy import Column, String, Boolean, DateTime, func
from db.init import Base

class ServiceRequest(Base):
    __tablename__ = "service_requests"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(String(36), index=True, nullable=False)
    professional_id = Column(String(36), index=True, nullable=False)  # user id of the professional, not professionals.id
    payment_link = Column(String(512), nullable=True)
    payment_status = Column(String(20), nullable=True)  # pending / paid
    payment_completed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
