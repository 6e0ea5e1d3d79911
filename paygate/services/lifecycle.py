"""
Transaction lifecycle.

    CREATED --(verified paid notification)--> PAID
    PAID --(proof delivery failed)--> PENDING_WEBHOOK (attempts + 1)
    PAID / PENDING_WEBHOOK --(proof delivered)--> webhook_last_status=delivered, attempts = 0

Only this module mutates transactions after creation. Duplicate notifications
are expected (the provider delivers at least once): the PAID transition is a
compare-and-set in the store, and a proof already delivered is not sent again.
"""
import asyncio
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

import httpx

from ..config import settings
from ..errors import (
    AuthenticationError,
    DeliveryError,
    NotFoundError,
    ValidationError,
)
from ..models import Transaction, as_utc, new_txid, utcnow
from ..store import TransactionStore
from .dispatcher import dispatch_proof
from .notifications import extract_provider_ref, extract_txid, parse_notification
from .proof import sign_proof
from .razorpay import create_payment_link
from .signature import verify_webhook_signature

logger = logging.getLogger(__name__)


class DeliveryOutcome(str, Enum):
    SKIPPED = "skipped"
    DELIVERED = "delivered"
    PENDING = "pending"


@dataclass
class PurchaseResult:
    transaction: Transaction
    payment_url: Optional[str]
    payment_link_id: Optional[str]


@dataclass
class NotificationResult:
    txid: str
    newly_paid: bool
    delivery: DeliveryOutcome


# ============================================================================
# Purchase initiation
# ============================================================================

async def create_transaction(
    store: TransactionStore,
    item_ref: str,
    order_ref: Optional[str] = None,
    callback_url: Optional[str] = None,
    redirect_url: Optional[str] = None,
    metadata: Optional[dict] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> PurchaseResult:
    """
    Open a CREATED transaction for an item and request a payment link for it.

    Raises:
        NotFoundError: unknown item
        ValidationError: item is not payable
        ProviderError: link creation failed; the transaction stays CREATED
    """
    item = await store.get_item(item_ref)
    if item is None:
        raise NotFoundError(f"Item {item_ref} not found", {"item_ref": item_ref})
    if not item.payable:
        raise ValidationError(f"Item {item_ref} is not payable", {"item_ref": item_ref})

    tx = await store.insert(Transaction(
        id=new_txid(),
        item_ref=item.item_ref,
        order_ref=order_ref,
        amount_minor_units=item.price_minor_units,
        currency=item.currency,
        callback_url=callback_url,
        redirect_url=redirect_url,
        tx_metadata=metadata or {},
    ))

    link = await create_payment_link(
        amount=tx.amount_minor_units,
        currency=tx.currency,
        reference_id=tx.id,
        description=item.title,
        callback_url=f"{settings.frontend_base}/payment/success?txid={tx.id}",
        client=http_client,
    )
    link_id = link.get("id")
    if link_id:
        await store.update_provider_ref(tx.id, link_id)
        tx.provider_ref = link_id

    logger.info(f"Created transaction {tx.id} for item {item_ref}, link={link_id}")
    return PurchaseResult(transaction=tx, payment_url=link.get("short_url"), payment_link_id=link_id)


# ============================================================================
# Payment confirmation
# ============================================================================

async def handle_notification(
    store: TransactionStore,
    raw_body: bytes,
    signature: Optional[str],
    http_client: Optional[httpx.AsyncClient] = None,
) -> NotificationResult:
    """
    Process one provider notification.

    The signature is checked against the raw body before anything is
    parsed. A delivery failure is recorded on the transaction and does not
    raise: the payment itself succeeded.

    Raises:
        ValidationError: missing signature, malformed body or no txid
        AuthenticationError: signature mismatch
        NotFoundError: txid unknown
        SigningKeyError: proof could not be signed; nothing was delivered
    """
    if not signature:
        raise ValidationError("missing signature")
    if not verify_webhook_signature(raw_body, signature, settings.razorpay_webhook_secret):
        logger.warning(
            "Rejected notification with invalid signature "
            f"(len={len(raw_body)}, sha256={hashlib.sha256(raw_body).hexdigest()[:16]})"
        )
        raise AuthenticationError("invalid signature")

    notification = parse_notification(raw_body)
    txid = extract_txid(notification)
    provider_ref = extract_provider_ref(notification)

    tx = await store.get_by_id(txid)
    if tx is None:
        raise NotFoundError(f"Transaction {txid} not found", {"txid": txid})

    newly_paid = await store.mark_paid(txid, provider_ref)
    if newly_paid:
        logger.info(f"Transaction {txid} PAID (provider_ref={provider_ref}, event={notification.event})")
    else:
        logger.info(f"Duplicate notification for {txid} (status={tx.status})")

    tx = await store.get_by_id(txid)
    delivery = await deliver_proof(store, tx, http_client=http_client)
    return NotificationResult(txid=txid, newly_paid=newly_paid, delivery=delivery)


# ============================================================================
# Proof delivery
# ============================================================================

async def deliver_proof(
    store: TransactionStore,
    tx: Transaction,
    http_client: Optional[httpx.AsyncClient] = None,
) -> DeliveryOutcome:
    """
    Sign a fresh proof for a paid transaction and POST it to its callback once.

    Skipped when there is no callback URL or the proof was already delivered.
    """
    if not tx.callback_url:
        return DeliveryOutcome.SKIPPED
    if tx.is_delivered:
        logger.debug(f"Proof for {tx.id} already delivered, not resending")
        return DeliveryOutcome.SKIPPED

    # fails closed: a SigningKeyError propagates before anything is sent
    proof = sign_proof({
        "txid": tx.id,
        "amount": tx.amount_minor_units,
        "currency": tx.currency,
        "orderId": tx.order_ref,
    })

    try:
        await dispatch_proof(tx.callback_url, tx.id, proof, client=http_client)
    except DeliveryError as e:
        await store.mark_pending_webhook(tx.id)
        logger.warning(f"Proof delivery for {tx.id} pending: {e.message} {e.details}")
        return DeliveryOutcome.PENDING

    await store.mark_delivered(tx.id)
    return DeliveryOutcome.DELIVERED


def backoff_seconds(attempts: int) -> int:
    """Wait before the next redelivery after `attempts` failures."""
    if attempts <= 0:
        return 0
    delay = settings.retry_base_seconds * (2 ** min(attempts - 1, 30))
    return min(delay, settings.retry_max_backoff_seconds)


def is_due(tx: Transaction, now: datetime) -> bool:
    last_attempt = as_utc(tx.webhook_last_attempt_at)
    if last_attempt is None:
        return True
    return last_attempt + timedelta(seconds=backoff_seconds(tx.webhook_attempts)) <= as_utc(now)


async def redeliver_pending(
    store: TransactionStore,
    http_client: Optional[httpx.AsyncClient] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Retry proof delivery for PENDING_WEBHOOK transactions whose backoff has
    elapsed. Returns the number of proofs delivered.

    Deliveries run concurrently, at most settings.retry_concurrency at a
    time, so one stalled consumer does not hold up the rest of the batch.
    """
    now = now or utcnow()
    due = [
        tx for tx in await store.list_pending_webhook(limit=settings.retry_batch_size)
        if is_due(tx, now)
    ]
    if not due:
        return 0

    limit = asyncio.Semaphore(max(1, settings.retry_concurrency))

    async def _redeliver(tx: Transaction) -> DeliveryOutcome:
        async with limit:
            return await deliver_proof(store, tx, http_client=http_client)

    outcomes = await asyncio.gather(*[_redeliver(tx) for tx in due])
    delivered = sum(1 for outcome in outcomes if outcome == DeliveryOutcome.DELIVERED)
    if delivered:
        logger.info(f"Redelivered {delivered} of {len(due)} pending proof(s)")
    return delivered
