"""Shared fixtures: a throwaway record store and SQLite target databases."""

import os
import sqlite3
import tempfile
from pathlib import Path

_store_dir = tempfile.mkdtemp(prefix="sqlgate-test-")
os.environ["SQLGATE_DATABASE_URL"] = f"sqlite+aiosqlite:///{_store_dir}/store.db"
os.environ["SQLGATE_ENV"] = "test"
os.environ["SQLGATE_SECRET_KEY"] = "test-secret"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

import sqlgate.models  # noqa: E402,F401
from sqlgate.database import Base, async_session, engine  # noqa: E402
from sqlgate.main import app, configure_state  # noqa: E402
from sqlgate.models.target import Target  # noqa: E402
from sqlgate.models.user import Team, User  # noqa: E402

ORDERS = [
    (1, "acme", 120.0, "pending"),
    (2, "globex", 75.5, "pending"),
    (3, "initech", 300.0, "shipped"),
    (4, "acme", 42.0, "shipped"),
    (5, "umbrella", 18.25, "pending"),
]

EMPLOYEES = [(i, f"employee{i}", "eng" if i % 2 else "ops", 1000 + i) for i in range(1, 151)]


def build_target_db(path: Path) -> Path:
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE orders (
            id INTEGER PRIMARY KEY,
            customer VARCHAR(64) NOT NULL,
            amount NUMERIC(10, 2),
            status VARCHAR(16)
        );
        CREATE TABLE employees (
            id INTEGER PRIMARY KEY,
            name VARCHAR(64),
            dept VARCHAR(16),
            salary INTEGER
        );
        CREATE VIEW pending_orders AS SELECT * FROM orders WHERE status = 'pending';
        """
    )
    conn.executemany("INSERT INTO orders VALUES (?, ?, ?, ?)", ORDERS)
    conn.executemany("INSERT INTO employees VALUES (?, ?, ?, ?)", EMPLOYEES)
    conn.commit()
    conn.close()
    return path


def read_rows(path: Path, sql: str) -> list[tuple]:
    conn = sqlite3.connect(path)
    try:
        return conn.execute(sql).fetchall()
    finally:
        conn.close()


def run_sql(path: Path, sql: str) -> None:
    conn = sqlite3.connect(path)
    try:
        conn.execute(sql)
        conn.commit()
    finally:
        conn.close()


def as_user(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


@pytest_asyncio.fixture(autouse=True)
async def store():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db():
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def people(db):
    """One team with a full approval chain, plus an admin and a stranger."""
    db.add(Team(id="data", name="Data", manager_id="mgr", skip_manager_id="skip"))
    db.add_all(
        [
            User(id="alice", username="alice", role="user", team_id="data"),
            User(id="bob", username="bob", role="user", team_id="data"),
            User(id="mgr", username="mgr", role="team_manager", team_id="data"),
            User(id="skip", username="skip", role="skip_manager", team_id="data"),
            User(id="root", username="root", role="admin"),
        ]
    )
    await db.commit()


@pytest.fixture
def target_path(tmp_path) -> Path:
    return build_target_db(tmp_path / "shop.db")


@pytest_asyncio.fixture
async def target(db, target_path) -> Target:
    t = Target(id="shop", name="Shop", dialect="sqlite", database=str(target_path), category="test")
    db.add(t)
    await db.commit()
    await db.refresh(t)
    return t


@pytest_asyncio.fixture
async def client(people):
    configure_state(app)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await app.state.pools.close_all()
