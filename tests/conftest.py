"""Shared test fixtures for the order escrow test suite.

Provides:
    - A file-backed SQLite database per test (aiosqlite), schema created
      from the ORM models
    - Sessions, settings and a recording notifier
    - OrderFlow: drives an order through its lifecycle via the services
    - FakeRedis: the two commands the sweep lock uses
    - An httpx client bound to the FastAPI app with dependencies overridden
"""

from __future__ import annotations

import uuid
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from order_escrow.config import Settings
from order_escrow.domain.notifier_protocol import Notification
from order_escrow.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    create_tables,
)
from order_escrow.infrastructure.database.orm_models import Party
from order_escrow.infrastructure.database.repositories import (
    EscrowRepository,
    PartyRepository,
    TransactionRepository,
)
from order_escrow.services.dispute_service import DisputeService
from order_escrow.services.order_service import OrderService

WEBHOOK_SECRET = "test-webhook-secret"
ADMIN_KEY = "test-admin-key"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class RecordingNotifier:
    """Keeps every notification in memory."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    def kinds(self) -> list[str]:
        return [n.kind for n in self.sent]


class FakeRedis:
    """SET NX EX and the compare-and-delete script, in a dict."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    async def set(
        self, key: str, value: str, nx: bool = False, ex: int | None = None
    ) -> bool | None:
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def eval(self, script: str, numkeys: int, key: str, token: str) -> int:
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0

    async def ping(self) -> bool:
        return True


class OrderFlow:
    """Moves orders through the lifecycle with real services on one session."""

    TITLE = "Logo design for a bakery"
    DESCRIPTION = "A clean, modern logo for a neighbourhood bakery in Lagos."
    NOTE = "Final logo attached in PNG and SVG formats."

    def __init__(self, session, settings: Settings, notifier: RecordingNotifier) -> None:
        self.session = session
        self.settings = settings
        self.notifier = notifier
        self.orders = OrderService(session, settings=settings, notifier=notifier)
        self.disputes = DisputeService(session, notifier=notifier)

    async def party(self, **fields) -> Party:
        party = Party(id=uuid.uuid4(), **fields)
        self.session.add(party)
        await self.session.flush()
        return party

    async def reload_party(self, party_id: uuid.UUID) -> Party:
        return await PartyRepository(self.session).get(party_id)

    async def escrow(self, order_id: uuid.UUID):
        return await EscrowRepository(self.session).get_by_order(order_id)

    async def create(
        self,
        client: Party | None = None,
        provider: Party | None = None,
        amount: Decimal = Decimal("100"),
        delivery_days: int = 3,
        max_revisions: int | None = None,
    ):
        client = client or await self.party(display_name="client")
        provider = provider or await self.party(display_name="provider")
        return await self.orders.create_order(
            client_id=client.id,
            provider_id=provider.id,
            title=self.TITLE,
            description=self.DESCRIPTION,
            amount=amount,
            delivery_days=delivery_days,
            max_revisions=max_revisions,
        )

    async def start_payment(self, order):
        """Initiate checkout and return the pending transaction."""
        initiation = await self.orders.initiate_payment(order.id, order.client_id)
        return await TransactionRepository(self.session).get_by_reference(initiation.reference)

    async def pay(self, order):
        tx = await self.start_payment(order)
        await self.orders.confirm_payment(tx, gateway_tx_id="FLW-100")
        return tx

    async def deliver(self, order):
        return await self.orders.deliver(
            order.id, order.provider_id, self.NOTE, ["https://files.example.com/logo.png"]
        )

    async def paid_order(self, **kwargs):
        order = await self.create(**kwargs)
        await self.pay(order)
        return order

    async def delivered_order(self, **kwargs):
        order = await self.paid_order(**kwargs)
        return await self.deliver(order)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        app_env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'escrow.db'}",
        platform_fee_rate=Decimal("0.10"),
        default_max_revisions=1,
        auto_approval_days=7,
        gateway_webhook_secret=WEBHOOK_SECRET,
        gateway_simulate=True,
        admin_api_key=ADMIN_KEY,
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = build_engine(settings.database_url)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def flow(session, settings, notifier) -> OrderFlow:
    return OrderFlow(session, settings, notifier)


@pytest_asyncio.fixture
async def api_client(session_factory, settings, fake_redis, notifier):
    """httpx client against the app, wired to the test database."""
    from order_escrow.api.deps import (
        get_app_settings,
        get_audit_session_factory,
        get_db_session,
        get_notifier,
        get_redis_client,
    )
    from order_escrow.main import create_app

    app = create_app()

    async def _db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _db_session
    app.dependency_overrides[get_audit_session_factory] = lambda: session_factory
    app.dependency_overrides[get_app_settings] = lambda: settings
    app.dependency_overrides[get_redis_client] = lambda: fake_redis
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture
async def seeded_parties(session_factory) -> tuple[uuid.UUID, uuid.UUID]:
    """A committed (client_id, provider_id) pair for API tests."""
    client_id, provider_id = uuid.uuid4(), uuid.uuid4()
    async with session_factory() as session:
        session.add_all([Party(id=client_id), Party(id=provider_id)])
        await session.commit()
    return client_id, provider_id
