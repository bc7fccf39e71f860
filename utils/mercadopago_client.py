"""
Mercado Pago API Client Wrapper
Handles the Mercado Pago REST calls used by the marketplace payment flow:
OAuth authorization/refresh, checkout preferences and payment lookups.

Every call returns a dict with a "success" flag. HTTP and network failures are
reported as {"success": False, "error": <provider text>, "http_status": <code>}
instead of being raised, so the routers decide how to surface them.
"""
import logging
from typing import Optional, Dict, Any
from urllib.parse import urlencode

import requests
from pydantic import ValidationError

from models.mercadopago import OAuthTokenResponse, PreferenceResponse, PaymentResponse
from utils.config import Settings

logger = logging.getLogger(__name__)

OAUTH_PLATFORM_ID = "mp"


def get_mercadopago_headers(access_token: Optional[str] = None) -> Dict[str, str]:
    """Get headers for Mercado Pago API requests"""
    headers = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def _failure(response: requests.Response) -> Dict[str, Any]:
    return {
        "success": False,
        "error": response.text,
        "http_status": response.status_code,
    }


def _request_failure(e: requests.exceptions.RequestException) -> Dict[str, Any]:
    if getattr(e, "response", None) is not None:
        return _failure(e.response)
    return {"success": False, "error": str(e), "http_status": None}


def build_authorization_url(settings: Settings, professional_id: str) -> str:
    """
    Build the URL a professional opens to link their Mercado Pago account.
    The professional id travels as the opaque OAuth state and comes back on the callback.
    """
    if not settings.mercado_pago_app_id or not settings.mercado_pago_redirect_uri:
        raise ValueError("Missing Mercado Pago configuration")

    params = {
        "client_id": settings.mercado_pago_app_id,
        "response_type": "code",
        "platform_id": OAUTH_PLATFORM_ID,
        "redirect_uri": settings.mercado_pago_redirect_uri,
        "state": professional_id,
    }
    return f"{settings.mercado_pago_auth_url.rstrip('/')}/authorization?{urlencode(params)}"


def _request_token(settings: Settings, payload: Dict[str, Any], action: str) -> Dict[str, Any]:
    url = f"{settings.mercado_pago_api_url}/oauth/token"
    body = {
        "client_id": settings.mercado_pago_app_id,
        "client_secret": settings.mercado_pago_client_secret,
        **payload,
    }

    try:
        response = requests.post(
            url, json=body, headers=get_mercadopago_headers(), timeout=settings.mercado_pago_timeout
        )
        if not response.ok:
            logger.error(f"Mercado Pago {action} error: {response.status_code} - {response.text}")
            return _failure(response)

        token = OAuthTokenResponse.model_validate(response.json())
        logger.info(f"Mercado Pago {action} succeeded for seller {token.user_id}")
        return {"success": True, "token": token}

    except requests.exceptions.RequestException as e:
        logger.error(f"Error during Mercado Pago {action}: {str(e)}")
        return _request_failure(e)
    except (ValueError, ValidationError) as e:
        logger.error(f"Unexpected Mercado Pago {action} response: {str(e)}")
        return {"success": False, "error": f"Invalid token response: {str(e)}", "http_status": response.status_code}


def exchange_authorization_code(settings: Settings, code: str) -> Dict[str, Any]:
    """
    Exchange the authorization code from the OAuth redirect for seller credentials.

    Returns:
        {"success": True, "token": OAuthTokenResponse} or a failure dict
    """
    return _request_token(
        settings,
        {
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": settings.mercado_pago_redirect_uri,
        },
        "authorization code exchange",
    )


def refresh_access_token(settings: Settings, refresh_token: str) -> Dict[str, Any]:
    """
    Exchange a refresh token for a new access token.

    Returns:
        {"success": True, "token": OAuthTokenResponse} or a failure dict
    """
    return _request_token(
        settings,
        {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        },
        "token refresh",
    )


def create_preference(settings: Settings, access_token: str, preference_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a hosted checkout preference on behalf of a seller.

    Args:
        access_token: the seller's OAuth access token (the marketplace fee is withheld from this seller)
        preference_data: items, payer, back_urls, external_reference, notification_url, marketplace_fee...

    Returns:
        {"success": True, "preference": PreferenceResponse} or a failure dict
    """
    url = f"{settings.mercado_pago_api_url}/checkout/preferences"

    try:
        logger.debug(f"Preference payload: {preference_data}")
        response = requests.post(
            url,
            json=preference_data,
            headers=get_mercadopago_headers(access_token),
            timeout=settings.mercado_pago_timeout,
        )
        if not response.ok:
            logger.error(f"Mercado Pago preference error: {response.status_code} - {response.text}")
            return _failure(response)

        preference = PreferenceResponse.model_validate(response.json())
        logger.info(f"Created preference {preference.id} for {preference_data.get('external_reference')}")
        return {"success": True, "preference": preference}

    except requests.exceptions.RequestException as e:
        logger.error(f"Error creating Mercado Pago preference: {str(e)}")
        return _request_failure(e)
    except (ValueError, ValidationError) as e:
        logger.error(f"Unexpected Mercado Pago preference response: {str(e)}")
        return {"success": False, "error": f"Invalid preference response: {str(e)}", "http_status": response.status_code}


def get_payment(settings: Settings, access_token: str, payment_id: str) -> Dict[str, Any]:
    """
    Fetch a payment by id.

    Returns:
        {"success": True, "payment": PaymentResponse} or a failure dict
    """
    url = f"{settings.mercado_pago_api_url}/v1/payments/{payment_id}"

    try:
        response = requests.get(
            url, headers=get_mercadopago_headers(access_token), timeout=settings.mercado_pago_timeout
        )
        if not response.ok:
            logger.error(f"Mercado Pago get payment {payment_id} error: {response.status_code} - {response.text}")
            return _failure(response)

        payment = PaymentResponse.model_validate(response.json())
        logger.debug(f"Payment details: {payment.model_dump()}")
        return {"success": True, "payment": payment}

    except requests.exceptions.RequestException as e:
        logger.error(f"Error fetching Mercado Pago payment {payment_id}: {str(e)}")
        return _request_failure(e)
    except (ValueError, ValidationError) as e:
        logger.error(f"Unexpected Mercado Pago payment response: {str(e)}")
        return {"success": False, "error": f"Invalid payment response: {str(e)}", "http_status": response.status_code}
