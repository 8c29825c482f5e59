"""
Shared fixtures for the order workflow tests.

Every test gets a fresh in-memory SQLite database (aiosqlite, one shared
connection via StaticPool) and a notifier that records what it was sent.
"""
import uuid
from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from orderflow import models  # noqa: F401
from orderflow.core.permissions import Actor
from orderflow.core.security import create_access_token
from orderflow.database import Base, get_db
from orderflow.models.order import OrderStatus
from orderflow.services.notification_service import get_notifier
from orderflow.services.workflow_service import WorkflowService


class RecordingNotifier:
    """Notifier double: records (event, payload) pairs, optionally fails."""

    def __init__(self):
        self.calls = []
        self.fail_with = None

    async def notify(self, event_kind, payload):
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append((event_kind, payload))

    def events(self, kind=None):
        return [event for event, _ in self.calls if kind is None or event == kind]

    def payloads(self, kind):
        return [payload for event, payload in self.calls if event == kind]


# ==================== Database ====================

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def workflow(db, notifier):
    return WorkflowService(db, notifier=notifier)


# ==================== Actors ====================

@pytest.fixture
def sales():
    return Actor(id=uuid.uuid4(), name="Sabine Sales", role="sales")


@pytest.fixture
def other_sales():
    return Actor(id=uuid.uuid4(), name="Otto Sales", role="sales")


@pytest.fixture
def supply_chain():
    return Actor(id=uuid.uuid4(), name="Carla Supply", role="supply_chain")


@pytest.fixture
def planning_north():
    return Actor(id=uuid.uuid4(), name="Nina North", role="planning_North")


@pytest.fixture
def planning_south():
    return Actor(id=uuid.uuid4(), name="Sven South", role="planning_South")


@pytest.fixture
def planning_all():
    return Actor(id=uuid.uuid4(), name="Paul Planning", role="planning")


@pytest.fixture
def admin():
    return Actor(id=uuid.uuid4(), name="Ada Admin", role="admin")


# ==================== Orders ====================

def order_data(**overrides):
    data = {
        "customer_name": "Muster Maschinenbau GmbH",
        "article_number": "GH-4711",
        "article_description": "Gear housing, cast aluminium",
        "total_quantity": 100,
        "location_distribution": {"North": 60, "South": 40},
        "earliest_delivery": date(2030, 3, 1),
        "latest_delivery": date(2030, 3, 31),
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_order(workflow, sales, supply_chain):
    """
    Create an order as `sales` and walk it forward to `status`
    (DRAFT, SALES_REVIEW, SUPPLY_CHAIN_REVIEW or PLANNING_REVIEW).
    """
    path = [
        (OrderStatus.SALES_REVIEW, sales),
        (OrderStatus.SUPPLY_CHAIN_REVIEW, sales),
        (OrderStatus.PLANNING_REVIEW, supply_chain),
    ]

    async def _make(status=OrderStatus.DRAFT, **overrides):
        order = await workflow.create_order(order_data(**overrides), sales)
        for target, actor in path:
            if order.status == status.value:
                break
            order = await workflow.transition(order.id, target, actor)
        return order

    return _make


@pytest.fixture
async def approved_order(workflow, make_order, planning_north, planning_south):
    order = await make_order(OrderStatus.PLANNING_REVIEW)
    await workflow.approve_location(order.id, "North", planning_north)
    return await workflow.approve_location(order.id, "South", planning_south)


# ==================== API ====================

def auth_headers(actor: Actor) -> dict:
    token = create_access_token(actor.id, actor.name, actor.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(session_factory, notifier):
    from orderflow.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
