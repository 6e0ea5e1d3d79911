import logging
import httpx
from typing import Optional
from ..config import settings
from ..errors import ProviderError

logger = logging.getLogger(__name__)

RAZORPAY_BASE = settings.razorpay_api_base
AUTH = (settings.razorpay_key_id, settings.razorpay_key_secret)
HEADERS = {
    "Content-Type": "application/json",
}

async def create_payment_link(amount: int,
                              currency: str,
                              reference_id: str,
                              description: Optional[str] = None,
                              callback_url: Optional[str] = None,
                              client: Optional[httpx.AsyncClient] = None,
                              ) -> dict:
    """
    Create a Razorpay payment link and return its JSON (id, short_url, ...).

    amount is in minor units (paise for INR). reference_id carries our txid
    so the paid notification can be matched back to the transaction.
    """
    payload = {
        "amount": amount,
        "currency": currency,
        "reference_id": reference_id,
        "description": description or "Payment",
        "notes": {"txid": reference_id},
        "notify": {"sms": False, "email": False},
    }
    if callback_url:
        payload["callback_url"] = callback_url
        payload["callback_method"] = "get"

    try:
        if client is not None:
            resp = await _post_link(client, payload)
        else:
            async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as own_client:
                resp = await _post_link(own_client, payload)
    except httpx.HTTPError as e:
        logger.error(f"Razorpay unreachable for {reference_id}: {e}")
        raise ProviderError("payment provider unreachable", {"reason": str(e)})

    try:
        data = resp.json()
    except ValueError:
        data = {"body": resp.text}

    if not resp.is_success:
        logger.error(f"Razorpay error for {reference_id}: {resp.status_code} {data}")
        raise ProviderError("payment provider error", data if isinstance(data, dict) else {"body": data})
    return data


async def _post_link(client: httpx.AsyncClient, payload: dict) -> httpx.Response:
    return await client.post(
        f"{RAZORPAY_BASE}/payment_links", json=payload, headers=HEADERS, auth=AUTH
    )
