import sys
import os
from datetime import timedelta

# Add parent directory to path to import modules
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
os.environ.setdefault("DATABASE_URL", "sqlite://")

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.init import init_db
from models.professional import Professional
from models.profile import Profile
from models.service_request import ServiceRequest
from models.oauth_token import MercadoPagoOAuthToken
from models.transaction import MercadoPagoTransaction
from models.mercadopago import PaymentResponse, PreferenceResponse, OAuthTokenResponse
from utils.config import Settings
from utils.payments import utcnow

PROFESSIONAL_ID = "prof-1"
PROFESSIONAL_USER_ID = "user-pro"
CLIENT_USER_ID = "user-client"
SERVICE_REQUEST_ID = "sr-1"


def make_session_factory():
    """Fresh in-memory database shared by every connection (TestClient runs endpoints in other threads)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite://",
        "mercado_pago_app_id": "1234567890",
        "mercado_pago_client_secret": "client-secret",
        "mercado_pago_redirect_uri": "https://api.example.com/mercadopago/oauth/callback",
        "mercado_pago_access_token": "APP_USR-platform-token",
        "public_base_url": "https://api.example.com",
    }
    values.update(overrides)
    return Settings(**values)


def seed_marketplace(db, with_token=True, expires_in=timedelta(hours=6), connected=True):
    """One professional, one client, one service request and (optionally) the professional's token."""
    db.add(Professional(id=PROFESSIONAL_ID, user_id=PROFESSIONAL_USER_ID, mercadopago_connected=connected))
    db.add(Profile(user_id=PROFESSIONAL_USER_ID, full_name="Dra. Ana Souza", email="ana@example.com"))
    db.add(Profile(user_id=CLIENT_USER_ID, full_name="Carlos Lima", email="carlos@example.com"))
    db.add(ServiceRequest(id=SERVICE_REQUEST_ID, client_id=CLIENT_USER_ID, professional_id=PROFESSIONAL_USER_ID))
    if with_token:
        db.add(MercadoPagoOAuthToken(
            professional_id=PROFESSIONAL_ID,
            user_id="998877",
            access_token="APP_USR-seller-token",
            refresh_token="TG-refresh-token",
            expires_in=21600,
            expires_at=utcnow() + expires_in,
            public_key="APP_USR-public",
            is_active=True,
        ))
    db.commit()


def add_transaction(db, service_request_id=SERVICE_REQUEST_ID, payment_id=None, status="pending"):
    transaction = MercadoPagoTransaction(
        service_request_id=service_request_id,
        professional_id=PROFESSIONAL_ID,
        client_id=CLIENT_USER_ID,
        preference_id=f"pref-{service_request_id}",
        payment_id=payment_id,
        status=status,
        transaction_amount=100.0,
        application_fee=10.0,
        net_amount=90.0,
        external_reference=f"service-{service_request_id}",
        mercadopago_user_id="998877",
    )
    db.add(transaction)
    db.commit()
    return transaction


def payment_result(payment_id="123456789", status="approved", external_reference=f"service-{SERVICE_REQUEST_ID}", **fields):
    payment = PaymentResponse(
        id=payment_id,
        status=status,
        external_reference=external_reference,
        payment_type_id=fields.get("payment_type_id", "credit_card"),
        payment_method_id=fields.get("payment_method_id", "master"),
        transaction_amount=fields.get("transaction_amount", 100.0),
    )
    return {"success": True, "payment": payment}


def preference_result(preference_id="pref-123"):
    return {
        "success": True,
        "preference": PreferenceResponse(
            id=preference_id,
            init_point=f"https://www.mercadopago.com.br/checkout/v1/redirect?pref_id={preference_id}",
            sandbox_init_point=f"https://sandbox.mercadopago.com.br/checkout/v1/redirect?pref_id={preference_id}",
        ),
    }


def token_result(access_token="APP_USR-new-token", refresh_token="TG-new-refresh", expires_in=21600):
    return {
        "success": True,
        "token": OAuthTokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            user_id="998877",
            public_key="APP_USR-public",
        ),
    }


def failure_result(error='{"message":"invalid_grant","status":400}', http_status=400):
    return {"success": False, "error": error, "http_status": http_status}
