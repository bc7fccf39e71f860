import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, func
from db.init import Base

class MercadoPagoOAuthToken(Base):
    __tablename__ = "mercadopago_oauth_tokens"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    # One row per professional; the OAuth callback upserts on this column
    professional_id = Column(String(36), ForeignKey("professionals.id"), unique=True, index=True, nullable=False)
    user_id = Column(String(64), nullable=True)  # Mercado Pago seller (collector) id
    access_token = Column(String(512), nullable=False)
    refresh_token = Column(String(512), nullable=True)
    token_type = Column(String(20), default="Bearer")
    expires_in = Column(Integer, nullable=True)  # seconds, as reported by the provider
    expires_at = Column(DateTime(timezone=True), nullable=True)
    scope = Column(String(255), nullable=True)
    public_key = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
