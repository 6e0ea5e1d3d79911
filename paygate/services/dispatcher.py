import logging
import httpx
from typing import Optional
from ..config import settings
from ..errors import DeliveryError

logger = logging.getLogger(__name__)


async def _post(client: httpx.AsyncClient, callback_url: str, body: dict) -> httpx.Response:
    return await client.post(
        callback_url, json=body, timeout=settings.callback_timeout_seconds
    )


async def dispatch_proof(callback_url: str,
                         txid: str,
                         proof: str,
                         client: Optional[httpx.AsyncClient] = None,
                         ) -> None:
    """
    POST {"txid", "proof"} to the consumer callback once.

    Raises DeliveryError on a network failure or a non-2xx answer. Retrying
    is the caller's business.
    """
    body = {"txid": txid, "proof": proof}
    try:
        if client is not None:
            resp = await _post(client, callback_url, body)
        else:
            async with httpx.AsyncClient() as own_client:
                resp = await _post(own_client, callback_url, body)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"Callback for {txid} failed: {type(e).__name__}: {e}")
        raise DeliveryError("Callback unreachable", {"txid": txid, "reason": str(e)})

    if not resp.is_success:
        logger.warning(f"Callback for {txid} answered {resp.status_code}")
        raise DeliveryError(
            "Callback rejected proof", {"txid": txid, "status_code": resp.status_code}
        )
    logger.info(f"Delivered proof for {txid} to {callback_url}")
