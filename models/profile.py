import uuid

from sqlalchemy import Column, String, DateTime, func
from db.init import Base

class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), unique=True, index=True, nullable=False)
    full_name = Column(String(150), nullable=True)
    email = Column(String(150), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
