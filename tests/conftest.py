import os
from collections.abc import AsyncGenerator
from datetime import date, timedelta
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Load environment variables from .env file, then fill in what tests need
load_dotenv()
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./careslot.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("NOTIFICATIONS_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "console")

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from app.core.permissions import Actor, Role  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.database import get_db  # noqa: E402
from app.dependencies import get_cache_manager  # noqa: E402
from app.main import app  # noqa: E402
from app.models import metadata  # noqa: E402
from app.schemas.providers import CareProviderCreate  # noqa: E402
from app.services.provider_service import ProviderService  # noqa: E402

# Optional PostgreSQL test database; defaults to a throwaway SQLite file per test
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")
if TEST_DATABASE_URL:
    TEST_DATABASE_URL = TEST_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

# 2025-06-23 is a Monday
MONDAY = date(2025, 6, 23)
SATURDAY = date(2025, 6, 28)


def is_postgres() -> bool:
    return bool(TEST_DATABASE_URL and TEST_DATABASE_URL.startswith("postgresql"))


def bearer_headers(actor_id: UUID, role: Role) -> dict[str, str]:
    """Authorization headers for an actor."""
    token = create_access_token(
        data={"sub": str(actor_id), "role": role.value},
        expires_delta=timedelta(minutes=30),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def test_database_url(tmp_path) -> str:
    if TEST_DATABASE_URL:
        return TEST_DATABASE_URL
    return f"sqlite+aiosqlite:///{tmp_path / 'careslot_test.db'}"


@pytest_asyncio.fixture
async def test_engine(test_database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Create the schema on a fresh engine and drop it afterwards."""
    # NullPool avoids sharing connections across event loops
    engine = create_async_engine(test_database_url, echo=False, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client with the database and cache overridden."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_manager] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ----------------------------------------------------------------------
# Actors
# ----------------------------------------------------------------------


@pytest.fixture
def requester() -> Actor:
    return Actor(id=uuid4(), role=Role.REQUESTER)


@pytest.fixture
def other_requester() -> Actor:
    return Actor(id=uuid4(), role=Role.REQUESTER)


@pytest.fixture
def admin() -> Actor:
    return Actor(id=uuid4(), role=Role.ADMIN)


@pytest.fixture
def requester_headers(requester: Actor) -> dict[str, str]:
    return bearer_headers(requester.id, requester.role)


@pytest.fixture
def other_requester_headers(other_requester: Actor) -> dict[str, str]:
    return bearer_headers(other_requester.id, other_requester.role)


@pytest.fixture
def admin_headers(admin: Actor) -> dict[str, str]:
    return bearer_headers(admin.id, admin.role)


# ----------------------------------------------------------------------
# Care providers
# ----------------------------------------------------------------------


@pytest.fixture
async def physical_provider(db_session: AsyncSession):
    """Active provider for the ``physical`` category."""
    service = ProviderService(db_session)
    return await service.create_provider(
        CareProviderCreate(id=uuid4(), name="Dr. Alice Moreau", specialty_group="physical")
    )


@pytest.fixture
async def mental_provider(db_session: AsyncSession):
    """Active provider for the ``mental`` category."""
    service = ProviderService(db_session)
    return await service.create_provider(
        CareProviderCreate(id=uuid4(), name="Dr. Ben Okafor", specialty_group="mental")
    )


@pytest.fixture
def staff(physical_provider) -> Actor:
    """Staff actor backed by the physical-care provider."""
    return Actor(id=physical_provider.id, role=Role.STAFF)


@pytest.fixture
def staff_headers(staff: Actor) -> dict[str, str]:
    return bearer_headers(staff.id, staff.role)


@pytest.fixture
def other_staff(mental_provider) -> Actor:
    return Actor(id=mental_provider.id, role=Role.STAFF)


@pytest.fixture
def other_staff_headers(other_staff: Actor) -> dict[str, str]:
    return bearer_headers(other_staff.id, other_staff.role)


@pytest.fixture
def appointment_payload() -> dict:
    """Request body for booking a physical-care appointment on a Monday."""
    return {
        "symptoms": "Persistent lower back pain",
        "priority": "medium",
        "health_issue_category": "physical",
        "requested_date": MONDAY.isoformat(),
        "requested_time": "09:40",
    }
