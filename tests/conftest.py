"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of crucible.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import BigInteger, Engine, create_engine, event  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from crucible.database.models import Base  # noqa: E402


# ---------------------------------------------------------------------------
# SQLite only autoincrements INTEGER PRIMARY KEY, so render BigInteger as
# INTEGER there.  Snowflake-sized values still fit (SQLite ints are 64-bit).
# ---------------------------------------------------------------------------
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


def _own_sqlite_transactions(engine: Engine, begin: str) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest inside it.

    pysqlite otherwise defers BEGIN until the first DML statement, which
    leaves a leading SAVEPOINT acting as the outer transaction.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql(begin)


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all Crucible tables.

    Uses StaticPool so every thread shares the same in-memory database
    (``run_db`` hops to a worker thread via ``asyncio.to_thread``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def engine(db_engine):
    return db_engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite with real transactions and one connection per thread.

    Writers take the lock up front (BEGIN IMMEDIATE) and queue on the busy
    timeout instead of failing a lock upgrade.  Sessions must not overlap
    within one thread.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'crucible.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    _own_sqlite_transactions(engine, begin="BEGIN IMMEDIATE")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin", is_admin: bool = True) -> str:
    """Create a dashboard JWT.  Usable as both a fixture helper and a factory."""
    import jwt

    from crucible.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def admin_token():
    return make_admin_token()


@pytest.fixture
def seed_challenge(db_engine):
    """Factory: insert a challenge row directly and return its id."""
    from sqlalchemy.orm import Session

    from crucible.database.models import Challenge

    def _make(guild_id: int = 100, *, is_active: bool = True, is_template: bool = False,
              cron_schedule: str | None = None, title: str = "Draw a cat") -> int:
        with Session(db_engine) as session:
            challenge = Challenge(
                guild_id=guild_id,
                title=title,
                description="",
                type="art",
                channel_id=555,
                is_active=is_active,
                is_template=is_template,
                cron_schedule=cron_schedule,
            )
            session.add(challenge)
            session.commit()
            return challenge.id

    return _make


@pytest.fixture
def seed_submission(db_engine, seed_challenge):
    """Factory: insert a submission row (no ledger entry) and return its id.

    ``votes`` only sets the cached counter; no Vote rows are created.
    """
    from sqlalchemy.orm import Session

    from crucible.database.models import Submission

    def _make(guild_id: int = 100, *, user_id: int, votes: int = 0,
              challenge_id: int | None = None) -> int:
        cid = challenge_id or seed_challenge(guild_id)
        with Session(db_engine) as session:
            submission = Submission(
                challenge_id=cid,
                guild_id=guild_id,
                user_id=user_id,
                username=f"user{user_id}",
                content_text="entry",
                votes=votes,
            )
            session.add(submission)
            session.commit()
            return submission.id

    return _make
