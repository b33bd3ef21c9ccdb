"""
Pytest configuration and fixtures.
"""
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from fusion_payments.config import Settings
from fusion_payments.core.payloads import LineItem, PaymentRequest
from fusion_payments.core.reconciliation import ReconciliationEngine
from fusion_payments.database.connection import create_session_factory, init_db
from fusion_payments.database.store import PaymentRecordStore
from fusion_payments.integrations.gateway_client import MoneyFusionClient
from fusion_payments.integrations.webhook_handler import WebhookIngress

API_URL = "https://api.moneyfusion.test/api/create-payment"


class FakeMoneyFusion:
    """
    In-process stand-in for the MoneyFusion HTTP API.

    Served through ``httpx.MockTransport``. Tests set ``create_response`` and
    ``check_responses`` or flip ``unavailable`` to simulate an outage.
    """

    def __init__(self) -> None:
        self.create_response: Dict[str, Any] = {
            "statut": True,
            "token": "T1",
            "url": "https://pay.moneyfusion.test/T1",
            "message": "Paiement en cours",
        }
        self.check_responses: Dict[str, Dict[str, Any]] = {}
        self.unavailable = False
        self.requests: List[httpx.Request] = []

    def set_status(self, token: str, statut: str, **data: Any) -> None:
        self.check_responses[token] = {
            "statut": True,
            "message": "details paiement",
            "data": {"tokenPay": token, "statut": statut, **data},
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unavailable:
            raise httpx.ConnectError("gateway unreachable", request=request)

        if request.method == "POST":
            return httpx.Response(200, json=self.create_response)

        token = request.url.path.rsplit("/", 1)[-1]
        body = self.check_responses.get(token)
        if body is None:
            return httpx.Response(404, json={"statut": False, "message": "not found"})
        return httpx.Response(200, json=body)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite://",
        moneyfusion_api_url=API_URL,
        moneyfusion_return_url="https://shop.test/payments/return",
        moneyfusion_webhook_url="https://shop.test/api/moneyfusion/webhook",
        gateway_retry_attempts=3,
        gateway_retry_delay_seconds=0,
        app_name="fusion-payments-test",
        app_env="test",
        log_level="DEBUG",
    )


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, Any]:
    """In-memory SQLite database shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(db_engine: AsyncEngine) -> PaymentRecordStore:
    return PaymentRecordStore(create_session_factory(db_engine))


@pytest.fixture
def fake_gateway() -> FakeMoneyFusion:
    return FakeMoneyFusion()


@pytest_asyncio.fixture
async def http_client(fake_gateway: FakeMoneyFusion) -> AsyncGenerator[httpx.AsyncClient, Any]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_gateway.handler)) as client:
        yield client


@pytest.fixture
def gateway(test_settings: Settings, http_client: httpx.AsyncClient) -> MoneyFusionClient:
    return MoneyFusionClient(test_settings, http_client=http_client)


@pytest.fixture
def engine(
    test_settings: Settings, store: PaymentRecordStore, gateway: MoneyFusionClient
) -> ReconciliationEngine:
    return ReconciliationEngine(test_settings, store, gateway)


@pytest.fixture
def ingress(engine: ReconciliationEngine) -> WebhookIngress:
    return WebhookIngress(engine)


def make_request(
    amount: str = "5000",
    items: Optional[List[LineItem]] = None,
    **overrides: Any,
) -> PaymentRequest:
    """Payment request with one line item by default."""
    fields: Dict[str, Any] = {
        "amount": Decimal(amount),
        "line_items": items or [LineItem(name="Abonnement", unit_price=Decimal(amount))],
        "customer_name": "Awa Kone",
        "customer_phone": "0700000000",
        "user_id": "42",
        "order_id": "1001",
    }
    fields.update(overrides)
    return PaymentRequest(**fields)


@pytest.fixture
def payment_request() -> PaymentRequest:
    return make_request()


@pytest.fixture
def success_webhook() -> Dict[str, Any]:
    """Webhook body MoneyFusion posts when a payment succeeds."""
    return {
        "tokenPay": "T1",
        "event": "payment.success",
        "numeroTransaction": "TRX1",
        "moyen": "wave",
        "frais": 250,
    }


@pytest.fixture
def request_factory() -> Any:
    return make_request
