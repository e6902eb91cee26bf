import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from taskgate.core.organizations import OrganizationGraph
from taskgate.core.principal import Principal
from taskgate.core.roles import Role
from taskgate.core.security import hash_password
from taskgate.core.settings import settings
from taskgate.models import Base, Organization, User
from taskgate.services.audit import RecordingFailureSink
from taskgate.services.authorization import AuthorizationFacade

PASSWORD = "correct-horse-battery"


@pytest_asyncio.fixture
async def async_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(async_engine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture(autouse=True)
def configure_settings(monkeypatch):
    monkeypatch.setattr(settings, "jwt_secret", "test-secret")
    monkeypatch.setattr(settings, "sentry_dsn", None)
    return settings


@pytest.fixture(autouse=True)
def patch_sessionlocal(monkeypatch, session_maker):
    monkeypatch.setattr("taskgate.services.base.SessionLocal", session_maker)
    return session_maker


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def graph():
    """Acme with two departments, plus an unrelated tenant."""

    return OrganizationGraph.from_records(
        [
            ("acme", None),
            ("engineering", "acme"),
            ("marketing", "acme"),
            ("globex", None),
        ]
    )


@pytest_asyncio.fixture
async def seeded(session):
    """Persist the same tree as ``graph`` plus one user per interesting seat."""

    acme = Organization(id="acme", name="Acme")
    globex = Organization(id="globex", name="Globex")
    engineering = Organization(id="engineering", name="Engineering", parent_id="acme")
    marketing = Organization(id="marketing", name="Marketing", parent_id="acme")
    session.add_all([acme, globex])
    await session.flush()
    session.add_all([engineering, marketing])
    await session.flush()

    password_hash = hash_password(PASSWORD)
    seats = {
        "owner": ("owner@acme.com", Role.OWNER, "acme"),
        "acme_admin": ("admin@acme.com", Role.ADMIN, "acme"),
        "eng_admin": ("eng-admin@acme.com", Role.ADMIN, "engineering"),
        "mkt_admin": ("mkt-admin@acme.com", Role.ADMIN, "marketing"),
        "eng_viewer": ("eng-viewer@acme.com", Role.VIEWER, "engineering"),
        "globex_admin": ("admin@globex.com", Role.ADMIN, "globex"),
    }
    users = {}
    for key, (email, role, organization_id) in seats.items():
        user = User(
            id=key,
            email=email,
            password_hash=password_hash,
            first_name=key.replace("_", " ").title(),
            role=role,
            organization_id=organization_id,
        )
        session.add(user)
        users[key] = user
    await session.commit()

    principals = {key: principal_for(user) for key, user in users.items()}
    return SimpleNamespace(users=users, principals=principals)


@pytest.fixture
def failure_sink():
    return RecordingFailureSink()


@pytest_asyncio.fixture
async def authz(session, session_maker, seeded, failure_sink):
    return await AuthorizationFacade.for_session(session, session_maker, failure_sink)


def principal_for(user: User) -> Principal:
    return Principal(
        id=user.id,
        role=user.role,
        organization_id=user.organization_id,
        email=user.email,
    )


@pytest.fixture
def password():
    return PASSWORD
