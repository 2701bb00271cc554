import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import uuid
from typing import AsyncGenerator, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.security import create_access_token
from app.db.schema_check import ensure_tables
from app.db.session import get_db, get_session_factory
from app.main import app
from app.realtime import notifier as notifier_module
from app.realtime.notifier import ChangeNotifier


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def make_token(tenant_id: uuid.UUID, role: str = "SUPER_ADMIN", permissions: Dict = None, name: str = "Test User") -> str:
    return create_access_token(subject={
        "user_id": str(uuid.uuid4()),
        "tenant_id": str(tenant_id),
        "role": role,
        "name": name,
        "permissions": permissions or {},
    })


def sample_order_payload(ref: str = "ORD-001") -> Dict:
    """Two classes, three students: 3 light + 4 dark = 7 garments."""
    return {
        "external_ref": ref,
        "school_name": "Hillside Primary",
        "total_students": 3,
        "total_light_garments": 3,
        "total_dark_garments": 4,
        "total_garments": 7,
        "classes": [
            {
                "name": "Grade 1",
                "total_students_to_serve_in_class": 2,
                "students": [
                    {"full_name": "Alice Adams", "light_garment_count": 2, "dark_garment_count": 1},
                    {"full_name": "Bob Brown", "light_garment_count": 1, "dark_garment_count": 1},
                ],
            },
            {
                "name": "Grade 2",
                "total_students_to_serve_in_class": 1,
                "students": [
                    {"full_name": "Cara Cole", "light_garment_count": 0, "dark_garment_count": 2},
                ],
            },
        ],
    }


@pytest.fixture(autouse=True)
def change_notifier(monkeypatch) -> ChangeNotifier:
    """Fresh notifier per test so subscriptions never leak between tests."""
    fresh = ChangeNotifier(queue_size=100)
    monkeypatch.setattr(notifier_module, "change_notifier", fresh)
    return fresh


@pytest.fixture()
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await ensure_tables(engine)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    await engine.dispose()


@pytest.fixture()
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependencies."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with session_factory() as session:
        yield session
    app.dependency_overrides.clear()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def tenant_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def auth_headers(tenant_id: uuid.UUID) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(tenant_id)}"}


@pytest.fixture()
def create_order(client: AsyncClient, auth_headers: Dict[str, str]):
    """Approve the sample order (or a given payload) and return the response body."""

    async def _create(payload: Dict = None) -> Dict:
        response = await client.post("/api/v1/orders", json=payload or sample_order_payload(), headers=auth_headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _create
