import base64
import hashlib
import hmac
import json
import os
import tempfile

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

WEBHOOK_SECRET = "whsec_test_secret"
SERVICE_API_KEY = "test-service-key"

_private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
TEST_PRIVATE_PEM = _private_key.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption(),
).decode("utf-8")
TEST_PUBLIC_PEM = _private_key.public_key().public_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PublicFormat.SubjectPublicKeyInfo,
)

# settings are read once at import time, so the environment goes first
os.environ.update({
    "DATABASE_URL": f"sqlite+aiosqlite:///{tempfile.gettempdir()}/paygate-test-default.db",
    "RAZORPAY_KEY_ID": "rzp_test_key",
    "RAZORPAY_KEY_SECRET": "rzp_test_secret",
    "RAZORPAY_WEBHOOK_SECRET": WEBHOOK_SECRET,
    "RAZORPAY_API_BASE": "https://razorpay.test/v1",
    "SERVICE_API_KEY": SERVICE_API_KEY,
    "FRONTEND_BASE": "https://shop.test",
    "RS_PRIV_PEM": TEST_PRIVATE_PEM,
    "RETRY_ENABLED": "false",
})

import httpx  # noqa: E402
import pytest  # noqa: E402

from paygate.db import init_db, make_engine, make_session_factory  # noqa: E402
from paygate.models import Item, Transaction  # noqa: E402
from paygate.services.proof import get_signing_key  # noqa: E402
from paygate.store import TransactionStore  # noqa: E402


@pytest.fixture
async def store(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path}/paygate.db")
    await init_db(engine)
    yield TransactionStore(make_session_factory(engine))
    await engine.dispose()


@pytest.fixture
async def item(store):
    item = Item(item_ref="clip-1", title="Final match highlights", price_minor_units=50000, currency="INR")
    async with store._session_factory() as session:
        session.add(item)
        await session.commit()
    return item


@pytest.fixture
def make_tx(store):
    async def _make(txid="t1", amount=50000, currency="INR", callback_url="https://consumer.test/callback", **kwargs):
        return await store.insert(Transaction(
            id=txid,
            item_ref=kwargs.pop("item_ref", "clip-1"),
            amount_minor_units=amount,
            currency=currency,
            callback_url=callback_url,
            **kwargs,
        ))
    return _make


@pytest.fixture
def sign_body():
    def _sign(raw: bytes, secret: str = WEBHOOK_SECRET) -> str:
        digest = hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")
    return _sign


@pytest.fixture
def notification_body():
    def _body(link_reference_id=None, notes_txid=None, payment_id="pay_NXk2", link_id="plink_Qe7x",
              event="payment_link.paid") -> bytes:
        payload = {}
        if link_reference_id is not None or link_id is not None:
            payload["payment_link"] = {"entity": {
                "id": link_id, "reference_id": link_reference_id, "status": "paid",
            }}
        if payment_id is not None or notes_txid is not None:
            payload["payment"] = {"entity": {
                "id": payment_id, "status": "captured",
                "notes": {"txid": notes_txid} if notes_txid else [],
            }}
        return json.dumps({"entity": "event", "event": event, "payload": payload}).encode("utf-8")
    return _body


class CallbackRecorder:
    """httpx MockTransport handler that records consumer callback requests."""

    def __init__(self, status_code=200, error=None):
        self.status_code = status_code
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error(f"cannot reach {request.url}", request=request)
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})

    @property
    def calls(self):
        return len(self.requests)

    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def callback():
    return CallbackRecorder()


@pytest.fixture
async def http_client(callback):
    async with httpx.AsyncClient(transport=httpx.MockTransport(callback)) as client:
        yield client


@pytest.fixture
def public_pem():
    return TEST_PUBLIC_PEM


@pytest.fixture(autouse=True)
def fresh_signing_key():
    get_signing_key.cache_clear()
    yield
    get_signing_key.cache_clear()
