import uuid

from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, func
from db.init import Base

class MercadoPagoTransaction(Base):
    __tablename__ = "mercadopago_transactions"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    service_request_id = Column(String(36), ForeignKey("service_requests.id"), index=True, nullable=False)
    professional_id = Column(String(36), ForeignKey("professionals.id"), index=True, nullable=False)
    client_id = Column(String(36), nullable=True)
    preference_id = Column(String(255), nullable=True)
    payment_id = Column(String(64), index=True, nullable=True)  # filled in by the webhook
    status = Column(String(50), default="pending")  # pending, approved, rejected, cancelled, in_process, ...
    payment_type = Column(String(50), nullable=True)
    payment_method = Column(String(50), nullable=True)
    transaction_amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    application_fee = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    net_amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    external_reference = Column(String(100), index=True, nullable=False)  # "service-<service_request_id>"
    mercadopago_user_id = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
