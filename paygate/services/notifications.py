"""
Typed view of the provider's webhook body and the rules that pull the
transaction id and the provider reference out of it.

Rules are evaluated in list order; the first one that yields a value wins.
"""
import logging
from typing import Any, Callable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError

logger = logging.getLogger(__name__)


class PaymentLinkEntity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    reference_id: Optional[str] = None
    status: Optional[str] = None


class PaymentEntity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    status: Optional[str] = None
    notes: dict = {}

    @field_validator("notes", mode="before")
    @classmethod
    def empty_notes(cls, v: Any) -> Any:
        # the provider sends [] instead of {} when no notes were set
        if v is None or v == []:
            return {}
        return v


class PaymentLinkWrapper(BaseModel):
    entity: Optional[PaymentLinkEntity] = None


class PaymentWrapper(BaseModel):
    entity: Optional[PaymentEntity] = None


class NotificationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    payment_link: Optional[PaymentLinkWrapper] = None
    payment: Optional[PaymentWrapper] = None

    @property
    def payment_link_entity(self) -> Optional[PaymentLinkEntity]:
        return self.payment_link.entity if self.payment_link else None

    @property
    def payment_entity(self) -> Optional[PaymentEntity]:
        return self.payment.entity if self.payment else None


class Notification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: Optional[str] = None
    payload: NotificationPayload = NotificationPayload()


Rule = Tuple[str, Callable[[NotificationPayload], Optional[str]]]


def _link_reference_id(p: NotificationPayload) -> Optional[str]:
    entity = p.payment_link_entity
    return entity.reference_id if entity else None


def _payment_notes_txid(p: NotificationPayload) -> Optional[str]:
    entity = p.payment_entity
    if entity is None:
        return None
    txid = entity.notes.get("txid")
    return str(txid) if txid else None


def _payment_id(p: NotificationPayload) -> Optional[str]:
    entity = p.payment_entity
    return entity.id if entity else None


def _link_id(p: NotificationPayload) -> Optional[str]:
    entity = p.payment_link_entity
    return entity.id if entity else None


TXID_RULES: List[Rule] = [
    ("payment_link.reference_id", _link_reference_id),
    ("payment.notes.txid", _payment_notes_txid),
]

# a payment id is more specific than the link it was paid through
PROVIDER_REF_RULES: List[Rule] = [
    ("payment.id", _payment_id),
    ("payment_link.id", _link_id),
]


def apply_rules(rules: List[Rule], payload: NotificationPayload) -> Tuple[Optional[str], Optional[str]]:
    """Return (value, rule name) for the first matching rule, or (None, None)."""
    for name, rule in rules:
        value = rule(payload)
        if value:
            return value, name
    return None, None


def parse_notification(raw_body: bytes) -> Notification:
    try:
        return Notification.model_validate_json(raw_body)
    except PydanticValidationError as e:
        raise ValidationError(
            "Malformed notification body",
            {"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        )


def extract_txid(notification: Notification) -> str:
    txid, rule = apply_rules(TXID_RULES, notification.payload)
    if txid is None:
        logger.warning(f"txid not found in notification (event={notification.event})")
        raise ValidationError("txid not found", {"event": notification.event})
    logger.debug(f"Resolved txid {txid} from {rule}")
    return txid


def extract_provider_ref(notification: Notification) -> Optional[str]:
    ref, _ = apply_rules(PROVIDER_REF_RULES, notification.payload)
    return ref
