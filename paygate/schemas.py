from datetime import datetime
from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field
from typing import Optional

class CreatePaymentIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_ref: str = Field(..., alias="itemRef", min_length=1)
    order_ref: Optional[str] = Field(default=None, alias="orderRef")
    callback_url: Optional[AnyHttpUrl] = Field(default=None, alias="callbackUrl")  # server-to-server proof target
    redirect_url: Optional[AnyHttpUrl] = Field(default=None, alias="redirectUrl")  # browser landing after payment
    metadata: Optional[dict] = None

class CreatePaymentOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_url: Optional[str] = Field(default=None, alias="paymentUrl")
    payment_link_id: Optional[str] = Field(default=None, alias="paymentLinkId")
    txid: str

class TransactionOut(BaseModel):
    txid: str
    item_ref: str
    order_ref: Optional[str] = None
    amount_minor_units: int
    currency: str
    status: str
    provider_ref: Optional[str] = None
    created_at: datetime
    paid_at: Optional[datetime] = None
    webhook_attempts: int = 0
    webhook_last_status: Optional[str] = None
