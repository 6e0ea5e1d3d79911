import uuid
from enum import Enum
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class TransactionStatus(str, Enum):
    CREATED = "CREATED"
    PAID = "PAID"
    PENDING_WEBHOOK = "PENDING_WEBHOOK"


class WebhookStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"


PAID_STATES = (TransactionStatus.PAID.value, TransactionStatus.PENDING_WEBHOOK.value)


def new_txid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC datetime; naive values read back from the database are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Transaction(SQLModel, table=True):
    __tablename__ = "transactions"

    id: str = Field(default_factory=new_txid, primary_key=True)
    item_ref: str = Field(index=True)
    order_ref: Optional[str] = None
    amount_minor_units: int  # paise, cents...
    currency: str
    status: str = Field(default=TransactionStatus.CREATED.value, index=True)
    provider_ref: Optional[str] = Field(default=None, index=True)
    callback_url: Optional[str] = None
    redirect_url: Optional[str] = None
    tx_metadata: dict = Field(default_factory=dict, sa_column=Column("metadata", JSON))
    created_at: datetime = Field(default_factory=utcnow)
    paid_at: Optional[datetime] = None
    webhook_attempts: int = 0
    webhook_last_status: Optional[str] = None  # pending, delivered
    webhook_last_attempt_at: Optional[datetime] = None

    @property
    def is_paid(self) -> bool:
        return self.status in PAID_STATES

    @property
    def is_delivered(self) -> bool:
        return self.webhook_last_status == WebhookStatus.DELIVERED.value


class Item(SQLModel, table=True):
    """Catalog entry a purchase is priced from."""
    __tablename__ = "items"

    item_ref: str = Field(primary_key=True)
    title: str
    price_minor_units: int
    currency: str = "INR"
    payable: bool = True
