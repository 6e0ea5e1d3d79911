"""
Durable transaction store.

Every mutation is one guarded UPDATE statement, so concurrent notifications
for the same transaction id are serialized by the database row and never
interleave a read-modify-write in Python.
"""
import logging
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlmodel import select, col

from .errors import ConflictError
from .models import Item, Transaction, TransactionStatus, WebhookStatus, PAID_STATES, utcnow

logger = logging.getLogger(__name__)


class TransactionStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def insert(self, tx: Transaction) -> Transaction:
        async with self._session_factory() as session:
            session.add(tx)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ConflictError(
                    f"Transaction {tx.id} already exists", {"txid": tx.id}
                )
            await session.refresh(tx)
        logger.info(f"Inserted transaction {tx.id} ({tx.amount_minor_units} {tx.currency})")
        return tx

    async def get_by_id(self, txid: str) -> Optional[Transaction]:
        async with self._session_factory() as session:
            return await session.get(Transaction, txid)

    async def get_item(self, item_ref: str) -> Optional[Item]:
        async with self._session_factory() as session:
            return await session.get(Item, item_ref)

    async def update_provider_ref(self, txid: str, provider_ref: str) -> None:
        await self._update(
            update(Transaction)
            .where(col(Transaction.id) == txid)
            .values(provider_ref=provider_ref)
        )

    async def mark_paid(self, txid: str, provider_ref: Optional[str]) -> bool:
        """
        Move a CREATED transaction to PAID.

        Compare-and-set on status: returns False when the transaction was
        already paid (or does not exist), in which case nothing is written.
        """
        values = {"status": TransactionStatus.PAID.value, "paid_at": utcnow()}
        if provider_ref:
            values["provider_ref"] = provider_ref
        rowcount = await self._update(
            update(Transaction)
            .where(col(Transaction.id) == txid)
            .where(col(Transaction.status) == TransactionStatus.CREATED.value)
            .values(**values)
        )
        return rowcount == 1

    async def mark_pending_webhook(self, txid: str) -> bool:
        """
        Record a failed proof delivery.

        Only applies to paid transactions with a callback URL whose proof was
        not already delivered.
        """
        rowcount = await self._update(
            update(Transaction)
            .where(col(Transaction.id) == txid)
            .where(col(Transaction.status).in_(PAID_STATES))
            .where(col(Transaction.callback_url).is_not(None))
            .where(or_(
                col(Transaction.webhook_last_status).is_(None),
                col(Transaction.webhook_last_status) != WebhookStatus.DELIVERED.value,
            ))
            .values(
                status=TransactionStatus.PENDING_WEBHOOK.value,
                webhook_attempts=col(Transaction.webhook_attempts) + 1,
                webhook_last_status=WebhookStatus.PENDING.value,
                webhook_last_attempt_at=utcnow(),
            )
        )
        return rowcount == 1

    async def mark_delivered(self, txid: str) -> None:
        await self._update(
            update(Transaction)
            .where(col(Transaction.id) == txid)
            .values(
                webhook_last_status=WebhookStatus.DELIVERED.value,
                webhook_attempts=0,
                webhook_last_attempt_at=utcnow(),
            )
        )

    async def list_pending_webhook(self, limit: int = 50) -> List[Transaction]:
        """Transactions still owed a proof delivery, least recently attempted first."""
        async with self._session_factory() as session:
            q = (
                select(Transaction)
                .where(col(Transaction.status) == TransactionStatus.PENDING_WEBHOOK.value)
                .where(col(Transaction.webhook_last_status) == WebhookStatus.PENDING.value)
                .order_by(col(Transaction.webhook_last_attempt_at).asc())
                .limit(limit)
            )
            res = await session.exec(q)
            return list(res.all())

    async def _update(self, stmt) -> int:
        async with self._session_factory() as session:
            res = await session.exec(stmt)
            await session.commit()
            return res.rowcount
