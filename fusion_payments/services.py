"""Wiring of the payment services from one Settings instance."""
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from fusion_payments.config import Settings
from fusion_payments.core.reconciliation import ReconciliationEngine
from fusion_payments.database.connection import close_db, create_engine, create_session_factory
from fusion_payments.database.store import PaymentRecordStore
from fusion_payments.integrations.gateway_client import MoneyFusionClient
from fusion_payments.integrations.webhook_handler import WebhookIngress
from fusion_payments.monitoring.health import HealthCheck

logger = structlog.get_logger(__name__)


@dataclass
class PaymentServices:
    """Everything the API, the sweep worker and the CLI need."""

    settings: Settings
    db_engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    store: PaymentRecordStore
    gateway: MoneyFusionClient
    engine: ReconciliationEngine
    webhook_ingress: WebhookIngress
    health: HealthCheck

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        db_engine: Optional[AsyncEngine] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "PaymentServices":
        """
        Build the service graph.

        Args:
            settings: Application settings
            db_engine: Optional pre-built database engine
            http_client: Optional httpx client for the gateway
        """
        db_engine = db_engine or create_engine(settings)
        session_factory = create_session_factory(db_engine)
        store = PaymentRecordStore(session_factory)
        gateway = MoneyFusionClient(settings, http_client=http_client)
        engine = ReconciliationEngine(settings, store, gateway)
        return cls(
            settings=settings,
            db_engine=db_engine,
            session_factory=session_factory,
            store=store,
            gateway=gateway,
            engine=engine,
            webhook_ingress=WebhookIngress(engine),
            health=HealthCheck(settings, session_factory),
        )

    async def close(self) -> None:
        """Release the gateway client and database connections."""
        await self.gateway.close()
        await close_db(self.db_engine)
        logger.info("payment_services_closed")
