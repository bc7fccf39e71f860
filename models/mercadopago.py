from typing import Optional

from pydantic import BaseModel, ConfigDict


class MercadoPagoRecord(BaseModel):
    # Mercado Pago returns numeric ids (payment id, seller id); we keep every id as a string
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class OAuthTokenResponse(MercadoPagoRecord):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_in: int
    user_id: Optional[str] = None
    scope: Optional[str] = None
    public_key: Optional[str] = None


class PreferenceResponse(MercadoPagoRecord):
    id: str
    init_point: Optional[str] = None
    sandbox_init_point: Optional[str] = None


class PaymentResponse(MercadoPagoRecord):
    id: str
    status: Optional[str] = None
    status_detail: Optional[str] = None
    external_reference: Optional[str] = None
    payment_type_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    transaction_amount: Optional[float] = None
