from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from db.init import get_db
from models.professional import Professional
from models.profile import Profile
from models.service_request import ServiceRequest
from models.oauth_token import MercadoPagoOAuthToken
from models.transaction import MercadoPagoTransaction
from utils.config import Settings, get_settings
from utils.mercadopago_client import (
    build_authorization_url,
    exchange_authorization_code,
    refresh_access_token,
    create_preference,
    get_payment,
)
from utils.payments import (
    build_external_reference,
    compute_expires_at,
    compute_fee_split,
    parse_external_reference,
    payment_status_update,
    resolve_transaction,
    token_is_expired,
    utcnow,
)
import json
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

MISSING_CONFIG = "Missing Mercado Pago configuration"

# --- Pydantic Models ---

class ProfessionalRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    professional_id: Optional[str] = Field(None, alias="professionalId")

class CreatePaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    service_request_id: Optional[str] = Field(None, alias="serviceRequestId")
    amount: Optional[float] = None
    commission_percentage: Optional[float] = Field(None, alias="commissionPercentage")  # defaults to DEFAULT_COMMISSION_PERCENTAGE

# --- Helpers ---

def get_active_token(db: Session, professional_id: str) -> Optional[MercadoPagoOAuthToken]:
    return (
        db.query(MercadoPagoOAuthToken)
        .filter(
            MercadoPagoOAuthToken.professional_id == professional_id,
            MercadoPagoOAuthToken.is_active == True,
        )
        .first()
    )

def deactivate_connection(db: Session, professional_id: str):
    """Mark every token of the professional inactive and clear the connected flag (caller commits)."""
    db.query(MercadoPagoOAuthToken).filter(
        MercadoPagoOAuthToken.professional_id == professional_id
    ).update({"is_active": False, "updated_at": utcnow()}, synchronize_session=False)
    db.query(Professional).filter(
        Professional.id == professional_id
    ).update({"mercadopago_connected": False}, synchronize_session=False)

def isoformat(value) -> Optional[str]:
    return value.isoformat() if value else None

# --- OAuth ---

@router.get("/oauth/init")
def oauth_init(
    professional_id: Optional[str] = None,
    settings: Settings = Depends(get_settings)
):
    """
    Build the Mercado Pago authorization URL for a professional.
    The professional id is sent as the OAuth state and returned to /oauth/callback.
    """
    if not professional_id:
        raise HTTPException(status_code=400, detail="professional_id is required")

    try:
        return {"authorizationUrl": build_authorization_url(settings, professional_id)}
    except Exception as e:
        logger.error(f"Error in oauth init: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/oauth/callback")
def oauth_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    """
    OAuth redirect target. Exchanges the code for seller credentials and
    stores them as the professional's single active token.
    """
    if not code or not state:
        raise HTTPException(status_code=400, detail="Missing code or state parameter")

    try:
        if not (settings.mercado_pago_app_id and settings.mercado_pago_client_secret and settings.mercado_pago_redirect_uri):
            raise HTTPException(status_code=500, detail=MISSING_CONFIG)

        professional_id = state
        prof = db.query(Professional).filter(Professional.id == professional_id).first()
        if not prof:
            raise HTTPException(status_code=404, detail="Professional not found")

        result = exchange_authorization_code(settings, code)
        if not result.get("success"):
            raise HTTPException(status_code=500, detail=f"Failed to exchange code for token: {result.get('error')}")

        token_data = result["token"]
        now = utcnow()

        # Upsert: one token row per professional
        token = db.query(MercadoPagoOAuthToken).filter(
            MercadoPagoOAuthToken.professional_id == professional_id
        ).first()
        if not token:
            token = MercadoPagoOAuthToken(professional_id=professional_id)
            db.add(token)

        token.user_id = token_data.user_id
        token.access_token = token_data.access_token
        token.refresh_token = token_data.refresh_token
        token.token_type = token_data.token_type or "Bearer"
        token.expires_in = token_data.expires_in
        token.expires_at = compute_expires_at(token_data.expires_in, now)
        token.scope = token_data.scope
        token.public_key = token_data.public_key
        token.is_active = True
        token.updated_at = now

        prof.mercadopago_connected = True
        db.commit()
        logger.info(f"Professional {professional_id} connected Mercado Pago seller {token_data.user_id}")

        if settings.app_url:
            return RedirectResponse(url=settings.app_url, status_code=303)
        return {"success": True, "message": "Mercado Pago account connected"}

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error in oauth callback: {e}")
        raise HTTPException(status_code=500, detail=str(e))

# --- Connection management ---

@router.get("/connection")
def get_connection_status(
    professional_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    Connection state for the payment settings screen. Never exposes the tokens themselves.
    """
    if not professional_id:
        raise HTTPException(status_code=400, detail="professional_id is required")

    prof = db.query(Professional).filter(Professional.id == professional_id).first()
    if not prof:
        raise HTTPException(status_code=404, detail="Professional not found")

    token = get_active_token(db, professional_id)
    return {
        "connected": bool(prof.mercadopago_connected and token),
        "expiresAt": isoformat(token.expires_at) if token else None,
        "expired": token_is_expired(token.expires_at) if token else None,
        "mercadopagoUserId": token.user_id if token else None,
        "publicKey": token.public_key if token else None,
    }

@router.post("/disconnect")
def disconnect(
    request: ProfessionalRequest,
    db: Session = Depends(get_db)
):
    if not request.professional_id:
        raise HTTPException(status_code=400, detail="professionalId is required")

    try:
        deactivate_connection(db, request.professional_id)
        db.commit()
        logger.info(f"Professional {request.professional_id} disconnected Mercado Pago")
        return {"success": True, "message": "Mercado Pago account disconnected"}
    except Exception as e:
        db.rollback()
        logger.error(f"Error disconnecting professional {request.professional_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/refresh-token")
def refresh_token(
    request: ProfessionalRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    """
    Refresh a professional's access token.
    If Mercado Pago rejects the refresh, the connection is deactivated so a
    stale token is never reused; the professional has to connect again.
    """
    professional_id = request.professional_id
    if not professional_id:
        raise HTTPException(status_code=400, detail="professionalId is required")

    try:
        token = get_active_token(db, professional_id)
        if not token:
            raise HTTPException(status_code=404, detail="No token found for this professional")

        if not settings.mercado_pago_app_id or not settings.mercado_pago_client_secret:
            raise HTTPException(status_code=500, detail=MISSING_CONFIG)

        result = refresh_access_token(settings, token.refresh_token)
        if not result.get("success"):
            http_status = result.get("http_status")
            # Only a provider answer rejecting the refresh ends the connection; timeouts and network errors keep it
            if http_status is not None and http_status >= 400:
                deactivate_connection(db, professional_id)
                db.commit()
                logger.warning(f"Deactivated Mercado Pago connection of professional {professional_id} after failed refresh")
            raise HTTPException(status_code=500, detail=f"Failed to refresh token: {result.get('error')}")

        new_token = result["token"]
        now = utcnow()
        expires_at = compute_expires_at(new_token.expires_in, now)

        try:
            token.access_token = new_token.access_token
            token.refresh_token = new_token.refresh_token or token.refresh_token
            token.expires_in = new_token.expires_in
            token.expires_at = expires_at
            token.updated_at = now
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Database update error: {e}")
            raise HTTPException(status_code=500, detail="Failed to update token")

        logger.info(f"Refreshed Mercado Pago token for professional {professional_id}, expires {expires_at.isoformat()}")
        return {
            "success": True,
            "message": "Token refreshed successfully",
            "expiresAt": expires_at.isoformat(),
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error refreshing token: {e}")
        raise HTTPException(status_code=500, detail=str(e))

# --- Payments ---

@router.post("/create-payment")
def create_payment(
    request: CreatePaymentRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    """
    Create a Mercado Pago checkout for a service request.
    1. Validates the request and the professional's connected account.
    2. Splits the amount into platform fee and professional net.
    3. Creates the preference under the professional's token (fee withheld as marketplace_fee).
    4. Records a pending transaction and stores the checkout link on the service request.
    Returns 400 with needsConnection / needsRefresh when the professional's account cannot be charged yet.
    """
    if not request.service_request_id or not request.amount:
        raise HTTPException(status_code=400, detail="serviceRequestId and amount are required")
    if request.amount < 0:
        raise HTTPException(status_code=400, detail="amount must be greater than zero")

    commission = request.commission_percentage
    if commission is None:
        commission = settings.default_commission_percentage
    if commission < 0 or commission > 100:
        raise HTTPException(status_code=400, detail="commissionPercentage must be between 0 and 100")

    try:
        service_request = db.query(ServiceRequest).filter(ServiceRequest.id == request.service_request_id).first()
        if not service_request:
            raise HTTPException(status_code=404, detail="Service request not found")

        prof = db.query(Professional).filter(Professional.user_id == service_request.professional_id).first()
        if not prof:
            raise HTTPException(status_code=404, detail="Professional not found")

        token = get_active_token(db, prof.id)
        if not token:
            return JSONResponse(
                status_code=400,
                content={"error": "Professional has not connected Mercado Pago account", "needsConnection": True},
            )

        if token_is_expired(token.expires_at):
            return JSONResponse(
                status_code=400,
                content={"error": "Token expired, needs refresh", "needsRefresh": True},
            )

        # Display data is optional
        client_profile = db.query(Profile).filter(Profile.user_id == service_request.client_id).first()
        professional_profile = db.query(Profile).filter(Profile.user_id == service_request.professional_id).first()
        client_name = (client_profile and client_profile.full_name) or "Cliente"
        client_email = (client_profile and client_profile.email) or f"cliente-{service_request.client_id}@example.com"
        professional_name = (professional_profile and professional_profile.full_name) or "Profissional"

        amount = request.amount
        application_fee, net_amount = compute_fee_split(amount, commission)
        external_reference = build_external_reference(service_request.id)
        return_url = (settings.app_url or settings.public_base_url).rstrip("/")

        preference_data = {
            "items": [
                {
                    "title": f"Atendimento - {professional_name}",
                    "quantity": 1,
                    "unit_price": amount,
                    "currency_id": settings.mercado_pago_currency,
                }
            ],
            "payer": {
                "name": client_name,
                "email": client_email,
            },
            "back_urls": {
                "success": f"{return_url}?payment=success",
                "failure": f"{return_url}?payment=failure",
                "pending": f"{return_url}?payment=pending",
            },
            "auto_return": "approved",
            "external_reference": external_reference,
            "notification_url": settings.webhook_url,
            "marketplace_fee": application_fee,
            "marketplace": settings.mercado_pago_app_id,
        }

        result = create_preference(settings, token.access_token, preference_data)
        if not result.get("success"):
            raise HTTPException(status_code=500, detail=f"Failed to create payment preference: {result.get('error')}")

        preference = result["preference"]

        db.add(MercadoPagoTransaction(
            service_request_id=service_request.id,
            professional_id=prof.id,
            client_id=service_request.client_id,
            preference_id=preference.id,
            status="pending",
            transaction_amount=amount,
            application_fee=application_fee,
            net_amount=net_amount,
            external_reference=external_reference,
            mercadopago_user_id=token.user_id,
        ))
        service_request.payment_link = preference.init_point
        service_request.payment_status = "pending"
        db.commit()

        logger.info(
            f"Created preference {preference.id} for service request {service_request.id}: "
            f"amount={amount} fee={application_fee} net={net_amount}"
        )
        return {
            "success": True,
            "preferenceId": preference.id,
            "initPoint": preference.init_point,
            "sandboxInitPoint": preference.sandbox_init_point,
        }

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating payment: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/webhook")
def mercadopago_webhook(
    payload: Dict[str, Any],
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    """
    Mercado Pago payment notifications.
    Anything we cannot act on (other topics, unknown payments, disconnected
    professionals) is acknowledged with 200 so Mercado Pago stops redelivering.
    """
    # TODO: verify the x-signature header against the webhook secret before trusting the payload
    try:
        data = payload.get("data")
        logger.info(f"Webhook received: type={payload.get('type')} id={data.get('id') if isinstance(data, dict) else None}")
        logger.debug(f"Webhook payload: {json.dumps(payload)}")

        if payload.get("type") != "payment":
            return {"message": "Not a payment notification"}

        payment_id = data.get("id") if isinstance(data, dict) else None
        if not payment_id:
            raise HTTPException(status_code=400, detail="No payment ID in notification")
        payment_id = str(payment_id)

        lookup = resolve_transaction(db, settings, payment_id)
        if not lookup.found or not lookup.transaction.professional_id:
            logger.info(f"Transaction not found for payment: {payment_id}")
            return {"message": "Transaction not found"}

        professional_id = lookup.transaction.professional_id
        logger.info(f"Payment {payment_id} matched transaction {lookup.transaction.id} by {lookup.source.value}")

        token = get_active_token(db, professional_id)
        if not token:
            logger.info(f"No OAuth token found for professional: {professional_id}")
            return {"message": "No OAuth token"}

        result = get_payment(settings, token.access_token, payment_id)
        if not result.get("success"):
            raise HTTPException(status_code=500, detail="Failed to fetch payment details")

        payment = result["payment"]
        service_request_id = parse_external_reference(payment.external_reference)
        if not service_request_id:
            logger.info(f"No external reference in payment {payment_id}")
            return {"message": "OK"}

        transaction_update = {
            "payment_id": payment_id,
            "status": payment.status,
            "payment_type": payment.payment_type_id,
            "payment_method": payment.payment_method_id,
            "updated_at": utcnow(),
        }
        if payment.transaction_amount is not None:
            transaction_update["transaction_amount"] = payment.transaction_amount

        db.query(MercadoPagoTransaction).filter(
            MercadoPagoTransaction.service_request_id == service_request_id
        ).update(transaction_update, synchronize_session=False)

        status_update = payment_status_update(payment.status)
        if status_update:
            db.query(ServiceRequest).filter(
                ServiceRequest.id == service_request_id
            ).update(status_update, synchronize_session=False)
            logger.info(f"Payment {payment.status} for service request: {service_request_id}")

        db.commit()
        return {"message": "Webhook processed successfully"}

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error in mercadopago webhook: {e}")
        raise HTTPException(status_code=500, detail=str(e))
