"""
Shared fixtures: an in-memory SQLite database per test, plus a small
directory of organizations and users covering every role.
"""

from dataclasses import dataclass

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from casework.models import Base, Organization, User, UserRole
from casework.services.authorization import Actor


# =============================================================================
# DATABASE
# =============================================================================


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


# =============================================================================
# DIRECTORY
# =============================================================================


@dataclass
class Directory:
    """Seeded organizations and users, with an Actor per user."""
    org_a: Organization
    org_b: Organization
    org_inactive: Organization
    users: dict[str, User]

    def actor(self, key: str) -> Actor:
        user = self.users[key]
        return Actor(user_id=user.id, role=user.role, organization_id=user.organization_id)


async def seed_directory(session: AsyncSession) -> Directory:
    org_a = Organization(
        slug="relief-partners",
        name="Relief Partners",
        sectors_provided=["Health", "Shelter"],
        locations_covered=["Maiduguri", "Yola"],
    )
    org_b = Organization(
        slug="food-first",
        name="Food First",
        sectors_provided=["Food Security"],
        locations_covered=["Maiduguri"],
    )
    org_inactive = Organization(
        slug="dormant-aid",
        name="Dormant Aid",
        is_active=False,
        sectors_provided=["Health"],
        locations_covered=["Yola"],
    )
    session.add_all([org_a, org_b, org_inactive])
    await session.flush()

    def user(key: str, role: UserRole, organization: Organization | None = None) -> User:
        return User(
            email=f"{key}@example.org",
            name=key.replace("_", " ").title(),
            role=role,
            organization_id=organization.id if organization else None,
        )

    users = {
        "admin": user("admin", UserRole.ADMIN),
        "state_admin": user("state_admin", UserRole.STATE_ADMIN),
        "case_worker": user("case_worker", UserRole.CASE_WORKER),
        "field_officer": user("field_officer", UserRole.FIELD_OFFICER),
        "viewer": user("viewer", UserRole.VIEWER),
        "org_a": user("org_a", UserRole.ORGANIZATION, org_a),
        "manager_a": user("manager_a", UserRole.MANAGER, org_a),
        "org_b": user("org_b", UserRole.ORGANIZATION, org_b),
    }
    session.add_all(users.values())
    await session.commit()

    return Directory(org_a=org_a, org_b=org_b, org_inactive=org_inactive, users=users)


@pytest.fixture
async def directory(session: AsyncSession) -> Directory:
    return await seed_directory(session)


@pytest.fixture
def admin(directory: Directory) -> Actor:
    return directory.actor("admin")


@pytest.fixture
def state_admin(directory: Directory) -> Actor:
    return directory.actor("state_admin")


@pytest.fixture
def case_worker(directory: Directory) -> Actor:
    return directory.actor("case_worker")


@pytest.fixture
def field_officer(directory: Directory) -> Actor:
    return directory.actor("field_officer")


@pytest.fixture
def org_a_actor(directory: Directory) -> Actor:
    return directory.actor("org_a")


@pytest.fixture
def org_b_actor(directory: Directory) -> Actor:
    return directory.actor("org_b")
