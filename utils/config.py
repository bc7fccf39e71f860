"""
Application settings.
Built once from the environment (and .env) and handed to the routers through Depends(get_settings).
"""
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    database_url: Optional[str] = None

    # Mercado Pago application credentials
    mercado_pago_app_id: Optional[str] = None
    mercado_pago_client_secret: Optional[str] = None
    mercado_pago_redirect_uri: Optional[str] = None
    # Platform-level token, used by the webhook when no local transaction matches the payment id yet
    mercado_pago_access_token: Optional[str] = None

    mercado_pago_api_url: str = "https://api.mercadopago.com"
    mercado_pago_auth_url: str = "https://auth.mercadopago.com"
    mercado_pago_currency: str = "BRL"
    mercado_pago_timeout: float = 10

    default_commission_percentage: float = 10
    public_base_url: str = "http://localhost:8000"
    app_url: Optional[str] = None

    auto_create_tables: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            mercado_pago_app_id=os.getenv("MERCADO_PAGO_APP_ID"),
            mercado_pago_client_secret=os.getenv("MERCADO_PAGO_CLIENT_SECRET"),
            mercado_pago_redirect_uri=os.getenv("MERCADO_PAGO_REDIRECT_URI"),
            mercado_pago_access_token=os.getenv("MERCADO_PAGO_ACCESS_TOKEN"),
            mercado_pago_api_url=os.getenv("MERCADO_PAGO_API_URL", "https://api.mercadopago.com"),
            mercado_pago_auth_url=os.getenv("MERCADO_PAGO_AUTH_URL", "https://auth.mercadopago.com"),
            mercado_pago_currency=os.getenv("MERCADO_PAGO_CURRENCY", "BRL"),
            mercado_pago_timeout=float(os.getenv("MERCADO_PAGO_TIMEOUT", "10")),
            default_commission_percentage=float(os.getenv("DEFAULT_COMMISSION_PERCENTAGE", "10")),
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000"),
            app_url=os.getenv("APP_URL"),
            auto_create_tables=_env_bool("AUTO_CREATE_TABLES"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @property
    def webhook_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/mercadopago/webhook"


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
