import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.pytest_brickflow.sqlite3")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_ALGORITHM", "HS256")

import uuid  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from jose import jwt  # noqa: E402

import brickflow.models  # noqa: E402,F401
from brickflow.actor import Actor, Role  # noqa: E402
from brickflow.config import settings  # noqa: E402
from brickflow.database import build_engine, build_session_factory, create_schema, get_db  # noqa: E402
from brickflow.models.brick_type import BrickType  # noqa: E402
from brickflow.models.user import User  # noqa: E402
from brickflow.schemas.delivery_challan import ChallanCreate  # noqa: E402
from brickflow.schemas.payment import PaymentCreate  # noqa: E402
from brickflow.schemas.requisition import RequisitionCreate  # noqa: E402
from brickflow.services.workflow_service import WorkflowOrchestrator, get_orchestrator  # noqa: E402


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'brickflow.sqlite3'}")
    await create_schema(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def users(session_factory) -> dict:
    created = {
        role: User(
            id=uuid.uuid4(),
            name=f"{role.value} User",
            email=f"{role.name.lower()}@brickflow.test",
            role=role.value,
        )
        for role in Role
    }
    async with session_factory() as session:
        async with session.begin():
            session.add_all(created.values())
    return created


def _actor(user: User) -> Actor:
    return Actor(user_id=user.id, role=user.role, name=user.name, email=user.email)


@pytest.fixture
def sales_actor(users) -> Actor:
    return _actor(users[Role.SALES_EXECUTIVE])


@pytest.fixture
def logistics_actor(users) -> Actor:
    return _actor(users[Role.LOGISTICS])


@pytest.fixture
def accounts_actor(users) -> Actor:
    return _actor(users[Role.ACCOUNTS])


@pytest.fixture
def admin_actor(users) -> Actor:
    return _actor(users[Role.ADMIN])


@pytest.fixture
async def brick_type(session_factory) -> BrickType:
    bt = BrickType(
        id=uuid.uuid4(),
        name="Red Clay Brick",
        current_price=Decimal("25.50"),
        unit="piece",
        is_active=True,
    )
    async with session_factory() as session:
        async with session.begin():
            session.add(bt)
    return bt


@pytest.fixture
async def inactive_brick_type(session_factory) -> BrickType:
    bt = BrickType(
        id=uuid.uuid4(),
        name="Discontinued Fly Ash Brick",
        current_price=Decimal("9.00"),
        is_active=False,
    )
    async with session_factory() as session:
        async with session.begin():
            session.add(bt)
    return bt


@pytest.fixture
def orchestrator(session_factory) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(session_factory)


# ---------------------------------------------------------------------------
# Workflow helpers: each returns the response data of a successful step
# ---------------------------------------------------------------------------

def requisition_body(brick_type: BrickType, **overrides) -> RequisitionCreate:
    data = {
        "brick_type_id": brick_type.id,
        "quantity": Decimal("100"),
        "entered_price": Decimal("25.50"),
        "total_amount": Decimal("2550.00"),
        "customer_name": "Ravi Constructions",
        "customer_phone": "9800000001",
        "customer_address": "12 Kiln Road",
        "customer_location": "Bhaktapur",
    }
    data.update(overrides)
    return RequisitionCreate(**data)


@pytest.fixture
def place_requisition(orchestrator, sales_actor, brick_type):
    async def _place(**overrides) -> dict:
        result = await orchestrator.create_requisition(
            sales_actor, requisition_body(brick_type, **overrides)
        )
        assert result.ok, result.errors
        return result.data

    return _place


@pytest.fixture
def issue_challan(orchestrator, logistics_actor):
    async def _issue(requisition_id, **overrides) -> dict:
        data = {
            "requisition_id": requisition_id,
            "vehicle_number": "BA 2 KHA 4411",
            "driver_name": "Suman Thapa",
            "vehicle_type": "Tipper",
            "location": "Bhaktapur site",
        }
        data.update(overrides)
        result = await orchestrator.create_challan_from_requisition(
            logistics_actor, ChallanCreate(**data)
        )
        assert result.ok, result.errors
        return result.data

    return _issue


@pytest.fixture
def book_payment(orchestrator, accounts_actor):
    async def _book(challan_id, **overrides) -> dict:
        result = await orchestrator.create_payment(
            accounts_actor, PaymentCreate(delivery_challan_id=challan_id, **overrides)
        )
        assert result.ok, result.errors
        return result.data

    return _book


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

def token_for(actor: Actor) -> str:
    return jwt.encode(
        {"sub": str(actor.user_id), "role": actor.role, "email": actor.email, "name": actor.name},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


def auth_headers(actor: Actor) -> dict:
    return {"Authorization": f"Bearer {token_for(actor)}"}


@pytest.fixture
async def client(session_factory):
    from brickflow.main import app

    async def _get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_orchestrator] = lambda: WorkflowOrchestrator(session_factory)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def make_requisition_body(brick_type):
    def _make(**overrides) -> RequisitionCreate:
        return requisition_body(brick_type, **overrides)

    return _make
