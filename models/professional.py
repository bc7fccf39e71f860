import uuid

from sqlalchemy import Column, String, Boolean, DateTime, func
from db.init import Base

class Professional(Base):
    __tablename__ = "professionals"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), unique=True, index=True, nullable=False)  # platform user behind the professional record
    mercadopago_connected = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
