# tests/conftest.py
"""
Fixtures et factories partagées sur l'ensemble de la suite de tests.

Quatre couches :
    1. Engine      — fonctions pures, aucun mock nécessaire
    2. Service     — mocks AsyncSession + repos via pytest-mock
    3. Router      — httpx.AsyncClient + dependency_overrides FastAPI
    4. Intégration — repositories réels sur une base SQLite temporaire (aiosqlite)
"""
import pytest
from types import SimpleNamespace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.main import app
from app.core.database import Base, get_db
from app.shared.deps import Principal, get_current_user, get_current_admin
from app.shared.enums import PrincipalRole, PulseScale, PulseCadence
import app.shared.models as _shared_models  # noqa: F401  (peuple Base.metadata)

TENANT_ID = "tenant-acme"
NOW = datetime(2026, 10, 19, 13, 5, tzinfo=timezone.utc)


# ── Factories (SimpleNamespace, sans ORM) ─────────────────────────────

def make_principal(**kwargs) -> Principal:
    defaults = {
        "id": "user-1",
        "tenant_id": TENANT_ID,
        "role": PrincipalRole.MEMBER,
    }
    defaults.update(kwargs)
    return Principal(**defaults)


def make_member(**kwargs) -> SimpleNamespace:
    defaults = {
        "id": "user-1",
        "tenant_id": TENANT_ID,
        "email": "user1@acme.test",
        "primary_team_id": "team-a",
        "is_active": True,
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def make_question(**kwargs) -> SimpleNamespace:
    defaults = {
        "id": "q-1",
        "tenant_id": TENANT_ID,
        "text": "Comment évaluez-vous votre charge de travail cette semaine ?",
        "category": "workload",
        "scale": PulseScale.LIKERT_1_5,
        "active": True,
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def make_schedule(**kwargs) -> SimpleNamespace:
    defaults = {
        "id": "sched-1",
        "tenant_id": TENANT_ID,
        "enabled": True,
        "cadence": PulseCadence.WEEKLY,
        "day_of_week": 0,
        "time_of_day": "09:00",
        "timezone": "America/New_York",
        "rotating_cohorts": True,
        "cohort_count": 2,
        "cohort_day_map": None,
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
        "updated_at": None,
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def make_invite(**kwargs) -> SimpleNamespace:
    defaults = {
        "id": "inv-1",
        "tenant_id": TENANT_ID,
        "user_id": "user-1",
        "question_id": "q-1",
        "cohort_name": "weekday-0",
        "team_id": "team-a",
        "token": "tok-abc",
        "sent_at": NOW,
        "expires_at": NOW + timedelta(days=7),
        "responded_at": None,
        "question": make_question(),
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def make_response(**kwargs) -> SimpleNamespace:
    defaults = {
        "question_id": "q-1",
        "team_id": "team-a",
        "score": 4,
        "responded_at": NOW - timedelta(hours=1),
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def make_async_db() -> AsyncMock:
    """
    AsyncMock d'AsyncSession. add / add_all sont synchrones dans SQLAlchemy :
    MagicMock pour ne pas produire de coroutine jamais attendue.
    """
    db = AsyncMock(spec=AsyncSession)
    db.add = MagicMock()
    db.add_all = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


# ── Fixtures HTTP (httpx.AsyncClient + dependency_overrides) ─────────────────

@pytest.fixture
async def client():
    """Client public (aucune authentification)."""
    mock_db = make_async_db()
    app.dependency_overrides[get_db] = lambda: mock_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def member_client():
    mock_db = make_async_db()
    principal = make_principal()
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_current_user] = lambda: principal
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def admin_client():
    mock_db = make_async_db()
    principal = make_principal(id="admin-1", role=PrincipalRole.ADMIN)
    app.dependency_overrides[get_db] = lambda: mock_db
    app.dependency_overrides[get_current_user] = lambda: principal
    app.dependency_overrides[get_current_admin] = lambda: principal
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ── Fixtures intégration (SQLite fichier, une connexion par session) ──────────

@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pulse.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def persist(session_factory, *objects):
    """Insère des objets ORM dans une session dédiée et commite."""
    async with session_factory() as session:
        session.add_all(objects)
        await session.commit()
