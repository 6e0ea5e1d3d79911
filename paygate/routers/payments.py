from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import PlainTextResponse
from typing import Optional
import logging
from ..schemas import CreatePaymentIn, CreatePaymentOut, TransactionOut
from ..services.lifecycle import create_transaction, handle_notification
from ..store import TransactionStore
from ..errors import NotFoundError
from ..utils import require_service_api_key, get_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


@router.post("/api/create-payment", response_model=CreatePaymentOut, dependencies=[Depends(require_service_api_key)])
async def create_payment(payload: CreatePaymentIn, store: TransactionStore = Depends(get_store)):
    """Open a transaction for an item and return the provider's payment link."""
    result = await create_transaction(
        store,
        item_ref=payload.item_ref,
        order_ref=payload.order_ref,
        callback_url=str(payload.callback_url) if payload.callback_url else None,
        redirect_url=str(payload.redirect_url) if payload.redirect_url else None,
        metadata=payload.metadata,
    )
    return CreatePaymentOut(
        payment_url=result.payment_url,
        payment_link_id=result.payment_link_id,
        txid=result.transaction.id,
    )


# Webhook (Razorpay -> POST)
@router.post("/payment/webhook", response_class=PlainTextResponse)
async def webhook(request: Request,
                  x_razorpay_signature: Optional[str] = Header(default=None),
                  store: TransactionStore = Depends(get_store)):
    """
    Razorpay posts payment events signed with the webhook secret.
    The raw body is verified before it is parsed; proof delivery runs
    inline and its failure is recorded, not reported back to Razorpay.
    """
    raw_body = await request.body()
    result = await handle_notification(store, raw_body, x_razorpay_signature)
    logger.debug(f"Webhook handled: {result}")
    return "ok"


@router.get("/api/transactions/{txid}", response_model=TransactionOut, dependencies=[Depends(require_service_api_key)])
async def transaction_status(txid: str, store: TransactionStore = Depends(get_store)):
    """Current status of a transaction."""
    tx = await store.get_by_id(txid)
    if tx is None:
        raise NotFoundError(f"Transaction {txid} not found", {"txid": txid})
    return TransactionOut(
        txid=tx.id,
        item_ref=tx.item_ref,
        order_ref=tx.order_ref,
        amount_minor_units=tx.amount_minor_units,
        currency=tx.currency,
        status=tx.status,
        provider_ref=tx.provider_ref,
        created_at=tx.created_at,
        paid_at=tx.paid_at,
        webhook_attempts=tx.webhook_attempts,
        webhook_last_status=tx.webhook_last_status,
    )
