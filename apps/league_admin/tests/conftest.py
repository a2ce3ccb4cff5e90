"""
Shared pytest configuration for league admin tests.

Runs against TEST_DATABASE_URL when set (e.g. a PostgreSQL test database), or a
throwaway SQLite file per test otherwise.

SAFETY: a TEST_DATABASE_URL whose database name does not contain "test" is
refused, so a misconfigured environment can never drop a real database.
"""

import os

os.environ.setdefault("ENV", "test")

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from league_admin.api.main import app  # noqa: E402
from league_admin.database.db import Base, get_db_session  # noqa: E402
from league_admin.database.models import (  # noqa: E402
    Division,
    League,
    Partnership,
    Player,
    Season,
    User,
    UserRole,
)
from league_admin.services import auth_service  # noqa: E402
from league_admin.utils.datetime_utils import utcnow  # noqa: E402


def _resolve_test_database_url(tmp_path) -> str:
    """Build the test database URL with safety checks.

    Raises ``RuntimeError`` if TEST_DATABASE_URL does not point to a database
    whose name contains "test".
    """
    url = os.getenv("TEST_DATABASE_URL")
    if not url:
        return f"sqlite+aiosqlite:///{tmp_path / 'league_admin_test.db'}"

    # ── Safety gate: database name MUST contain "test" ──────────────────
    db_name = url.rsplit("/", 1)[-1].split("?")[0]  # strip query params
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"\n{'=' * 70}\n"
            f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
            f"  The database name must contain 'test' to prevent accidental\n"
            f"  data loss in development or production databases.\n\n"
            f"  Resolved URL: {url}\n"
            f"{'=' * 70}"
        )
    return url


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a fresh schema for each test."""
    # NullPool: every session gets its own connection, so two sessions can race
    engine = create_async_engine(
        _resolve_test_database_url(tmp_path),
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker):
    """Session used by the test body and its seed fixtures."""
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest_asyncio.fixture
async def other_session(session_maker):
    """A second, independent session (a second admin's connection)."""
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


async def _create_user_and_player(db_session, email, name, role=UserRole.PLAYER.value):
    """Helper: create a user + player pair, return (user_id, player_id)."""
    user = User(email=email, name=name, role=role, is_verified=True)
    db_session.add(user)
    await db_session.flush()

    player = Player(full_name=name, user_id=user.id)
    db_session.add(player)
    await db_session.flush()
    return user.id, player.id


@pytest_asyncio.fixture
async def league(db_session):
    """
    One league, season and two divisions, four players and two admins.

    Committed, so lifecycle calls (which commit or roll back on their own)
    never lose the seed data.
    """
    alice_user, alice = await _create_user_and_player(db_session, "alice@test.com", "Alice Alpha")
    bob_user, bob = await _create_user_and_player(db_session, "bob@test.com", "Bob Beta")
    carol_user, carol = await _create_user_and_player(db_session, "carol@test.com", "Carol Gamma")
    dave_user, dave = await _create_user_and_player(db_session, "dave@test.com", "Dave Delta")

    admin = User(email="ada@test.com", name="Admin Ada", role=UserRole.ADMIN.value)
    second_admin = User(email="sam@test.com", name="Super Sam", role=UserRole.SUPERADMIN.value)
    db_session.add_all([admin, second_admin])

    tennis = League(name="City Tennis League", sport="tennis")
    db_session.add(tennis)
    await db_session.flush()

    season = Season(league_id=tennis.id, name="Spring 2026")
    other_season = Season(league_id=tennis.id, name="Fall 2026")
    db_session.add_all([season, other_season])
    await db_session.flush()

    open_division = Division(season_id=season.id, name="Open")
    mixed_division = Division(season_id=season.id, name="Mixed")
    fall_division = Division(season_id=other_season.id, name="Open")
    db_session.add_all([open_division, mixed_division, fall_division])
    await db_session.flush()

    ids = {
        "alice": alice,
        "bob": bob,
        "carol": carol,
        "dave": dave,
        "alice_user": alice_user,
        "bob_user": bob_user,
        "carol_user": carol_user,
        "dave_user": dave_user,
        "admin": admin.id,
        "second_admin": second_admin.id,
        "league": tennis.id,
        "season": season.id,
        "other_season": other_season.id,
        "division": open_division.id,
        "mixed_division": mixed_division.id,
        "fall_division": fall_division.id,
    }
    await db_session.commit()
    return ids


async def insert_partnership(db_session, league, captain, partner, status="ACTIVE", division=None):
    """Insert a partnership row directly, bypassing the lifecycle checks."""
    now = utcnow()
    partnership = Partnership(
        captain_id=captain,
        partner_id=partner,
        division_id=division or league["division"],
        season_id=league["season"],
        status=status,
        created_at=now,
        updated_at=now,
    )
    db_session.add(partnership)
    await db_session.commit()
    return partnership.id


def auth_headers(user_id: int) -> dict:
    """Bearer header carrying a real signed token for ``user_id``."""
    token = auth_service.create_access_token({"user_id": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(session_maker):
    """HTTP client against the app with the database dependency pointed at the test engine."""

    async def override_get_db_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
