"""
Marketplace payment helpers shared by the Mercado Pago routes:
fee split, external reference handling, token expiry and webhook transaction lookup.
"""
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Dict, Any, NamedTuple, Tuple

from sqlalchemy.orm import Session

from models.transaction import MercadoPagoTransaction
from utils.config import Settings
from utils.mercadopago_client import get_payment

logger = logging.getLogger(__name__)

EXTERNAL_REFERENCE_PREFIX = "service-"
CENTS = Decimal("0.01")


def compute_fee_split(amount: float, commission_percentage: float) -> Tuple[float, float]:
    """
    Platform fee and seller net for a charge, rounded half-up to cents.
    100.00 at 10% -> (10.00, 90.00)
    """
    gross = Decimal(str(amount))
    fee = (gross * Decimal(str(commission_percentage)) / Decimal(100)).quantize(CENTS, rounding=ROUND_HALF_UP)
    net = (gross - fee).quantize(CENTS, rounding=ROUND_HALF_UP)
    return float(fee), float(net)


def build_external_reference(service_request_id: str) -> str:
    return f"{EXTERNAL_REFERENCE_PREFIX}{service_request_id}"


def parse_external_reference(external_reference: Optional[str]) -> Optional[str]:
    """Service request id from a "service-<id>" reference, None for anything we did not issue."""
    if not external_reference or not external_reference.startswith(EXTERNAL_REFERENCE_PREFIX):
        return None
    return external_reference[len(EXTERNAL_REFERENCE_PREFIX):] or None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_expires_at(expires_in: int, now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) + timedelta(seconds=expires_in)


def token_is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when expires_at is strictly in the past. A token without expiry is treated as expired."""
    if expires_at is None:
        return True
    # SQLite hands back naive datetimes; everything we store is UTC
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at < (now or utcnow())


def payment_status_update(status: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Service request columns to write for a provider payment status.
    approved -> paid; rejected/cancelled -> back to pending; anything else (in_process, pending...) -> no change.
    """
    if status == "approved":
        return {"payment_status": "paid", "payment_completed": True}
    if status in ("rejected", "cancelled"):
        return {"payment_status": "pending", "payment_completed": False}
    return None


class LookupSource(str, Enum):
    PAYMENT_ID = "payment_id"
    EXTERNAL_REFERENCE = "external_reference"
    NOT_FOUND = "not_found"


class TransactionLookup(NamedTuple):
    source: LookupSource
    transaction: Optional[MercadoPagoTransaction] = None

    @property
    def found(self) -> bool:
        return self.source is not LookupSource.NOT_FOUND and self.transaction is not None


def find_transaction_by_payment_id(db: Session, payment_id: str) -> Optional[MercadoPagoTransaction]:
    return (
        db.query(MercadoPagoTransaction)
        .filter(MercadoPagoTransaction.payment_id == str(payment_id))
        .first()
    )


def find_transaction_by_service_request(db: Session, service_request_id: str) -> Optional[MercadoPagoTransaction]:
    # Several attempts can exist for one request; the newest preference is the live one
    return (
        db.query(MercadoPagoTransaction)
        .filter(MercadoPagoTransaction.service_request_id == service_request_id)
        .order_by(MercadoPagoTransaction.created_at.desc())
        .first()
    )


def resolve_transaction(db: Session, settings: Settings, payment_id: str) -> TransactionLookup:
    """
    Find the local transaction a payment notification belongs to.

    1. By payment id, once a previous notification has stored it.
    2. Otherwise fetch the payment with the platform token and follow its
       external reference back to the service request.
    """
    transaction = find_transaction_by_payment_id(db, payment_id)
    if transaction:
        return TransactionLookup(LookupSource.PAYMENT_ID, transaction)

    if not settings.mercado_pago_access_token:
        logger.warning(f"No platform access token configured, cannot resolve payment {payment_id} by reference")
        return TransactionLookup(LookupSource.NOT_FOUND)

    result = get_payment(settings, settings.mercado_pago_access_token, payment_id)
    if not result.get("success"):
        logger.warning(f"Platform lookup of payment {payment_id} failed: {result.get('error')}")
        return TransactionLookup(LookupSource.NOT_FOUND)

    service_request_id = parse_external_reference(result["payment"].external_reference)
    if not service_request_id:
        return TransactionLookup(LookupSource.NOT_FOUND)

    transaction = find_transaction_by_service_request(db, service_request_id)
    if transaction:
        return TransactionLookup(LookupSource.EXTERNAL_REFERENCE, transaction)
    return TransactionLookup(LookupSource.NOT_FOUND)
