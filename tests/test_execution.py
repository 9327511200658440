"""Execution, backup snapshot and rollback tests against a SQLite target."""

import asyncio

import pytest
from conftest import ORDERS, as_user, read_rows, run_sql
from httpx import AsyncClient
from sqlalchemy import update

from sqlgate.database import async_session
from sqlgate.errors import InvalidStateError
from sqlgate.main import app
from sqlgate.models.query import QueryRecord, QueryStatus
from sqlgate.models.user import User
from sqlgate.services.authorization import Action, RoleAuthorizer
from sqlgate.services.execution_service import ExecutionEngine
from sqlgate.utils.sql import backup_table_name

ORDERS_SQL = "SELECT * FROM orders ORDER BY id"


class GatedAuthorizer(RoleAuthorizer):
    """Holds the first ``action`` check until ``release`` is set."""

    def __init__(self, action: Action):
        self.action = action
        self.holding = asyncio.Event()
        self.release = asyncio.Event()

    async def is_allowed(self, user, action, resource):
        if action is self.action and not self.holding.is_set():
            self.holding.set()
            await self.release.wait()
        return await super().is_allowed(user, action, resource)


class InterferingEngine(ExecutionEngine):
    """Another writer moves the record to ``status`` while the target is being changed."""

    def __init__(self, pools, authorizer, query_id: str, status: QueryStatus):
        super().__init__(pools, authorizer)
        self.query_id = query_id
        self.status = status

    async def _interfere(self):
        async with async_session() as other:
            await other.execute(
                update(QueryRecord).where(QueryRecord.id == self.query_id).values(status=self.status)
            )
            await other.commit()

    async def _run(self, conn, statement, params):
        await self._interfere()
        return await super()._run(conn, statement, params)

    async def _restore(self, conn, dialect, table, backup, query_id):
        await self._interfere()
        return await super()._restore(conn, dialect, table, backup, query_id)


async def approved_query(client: AsyncClient, statement: str, parameters: list | None = None) -> str:
    """Draft as alice and walk the record through both approval steps."""
    resp = await client.post(
        "/api/queries/",
        json={"title": "exec", "statement": statement, "target_id": "shop", "parameters": parameters or []},
        headers=as_user("alice"),
    )
    assert resp.status_code == 201, resp.text
    query_id = resp.json()["id"]
    resp = await client.post(f"/api/queries/{query_id}/submit", headers=as_user("alice"))
    if resp.json()["status"] == "approved":
        return query_id

    for role, approver in (("team", "mgr"), ("skip", "skip")):
        approvals = (await client.get(f"/api/queries/{query_id}/approvals", headers=as_user("alice"))).json()
        pending = next(a for a in approvals if a["role"] == role)
        resp = await client.post(
            f"/api/approvals/{pending['id']}/resolve", json={"decision": "approved"}, headers=as_user(approver)
        )
        assert resp.status_code == 200, resp.text
    return query_id


async def execute(client: AsyncClient, query_id: str, user: str = "alice"):
    return await client.post(f"/api/queries/{query_id}/execute", headers=as_user(user))


async def rollback(client: AsyncClient, query_id: str, user: str = "skip"):
    return await client.post(f"/api/queries/{query_id}/rollback", headers=as_user(user))


# ── Execute ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_execute_then_rollback_restores_table(client: AsyncClient, target, target_path):
    before = read_rows(target_path, ORDERS_SQL)
    query_id = await approved_query(client, "UPDATE orders SET status = 'cancelled' WHERE customer = 'acme'")

    resp = await execute(client, query_id)
    assert resp.status_code == 200
    result = resp.json()
    assert result["success"] is True
    assert result["status"] == "executed"
    assert result["rows_affected"] == 2
    backup = result["backup_table"]
    assert backup == f"orders_BACKUP_{query_id.replace('-', '')[:12].upper()}"

    assert read_rows(target_path, "SELECT id FROM orders WHERE status = 'cancelled' ORDER BY id") == [(1,), (4,)]
    assert read_rows(target_path, f"SELECT * FROM {backup} ORDER BY id") == before

    record = (await client.get(f"/api/queries/{query_id}", headers=as_user("alice"))).json()
    assert record["can_rollback"] is True
    assert record["executed_by"] == "alice"
    assert record["elapsed_ms"] >= 0

    resp = await rollback(client, query_id)
    assert resp.status_code == 200
    assert resp.json()["status"] == "rolled_back"
    assert resp.json()["restored_table"] == "orders"
    assert read_rows(target_path, ORDERS_SQL) == before

    record = (await client.get(f"/api/queries/{query_id}", headers=as_user("alice"))).json()
    assert record["status"] == "rolled_back"
    assert record["rolled_back_by"] == "skip"
    assert record["rolled_back_at"] is not None


@pytest.mark.asyncio
async def test_execute_binds_parameters(client: AsyncClient, target, target_path):
    query_id = await approved_query(
        client,
        "DELETE FROM orders WHERE amount < :limit AND status = :status",
        [{"name": "limit", "type": "number", "value": "100"}, {"name": "status", "value": "pending"}],
    )
    result = (await execute(client, query_id)).json()
    assert result["success"] is True
    assert result["rows_affected"] == 2
    assert [row[0] for row in read_rows(target_path, ORDERS_SQL)] == [1, 3, 4]


@pytest.mark.asyncio
async def test_select_preview_is_capped(client: AsyncClient, target):
    query_id = await approved_query(client, "SELECT * FROM employees ORDER BY id")

    result = (await execute(client, query_id)).json()
    assert result["success"] is True
    assert result["rows_affected"] == 150
    assert len(result["preview_rows"]) == 100
    assert result["preview_truncated"] is True
    assert result["preview_rows"][0] == {"id": 1, "name": "employee1", "dept": "eng", "salary": 1001}
    assert result["backup_table"] is None

    record = (await client.get(f"/api/queries/{query_id}", headers=as_user("alice"))).json()
    assert len(record["preview_rows"]) == 100
    assert record["can_rollback"] is False


@pytest.mark.asyncio
async def test_execute_requires_approved(client: AsyncClient, target, target_path):
    resp = await client.post(
        "/api/queries/",
        json={"title": "early", "statement": "DELETE FROM orders", "target_id": "shop"},
        headers=as_user("alice"),
    )
    query_id = resp.json()["id"]

    resp = await execute(client, query_id)
    assert resp.status_code == 409
    assert (await client.get(f"/api/queries/{query_id}", headers=as_user("alice"))).json()["status"] == "draft"

    await client.post(f"/api/queries/{query_id}/submit", headers=as_user("alice"))
    resp = await execute(client, query_id)
    assert resp.status_code == 409
    assert (await client.get(f"/api/queries/{query_id}", headers=as_user("alice"))).json()["status"] == "submitted"
    assert len(read_rows(target_path, ORDERS_SQL)) == len(ORDERS)


@pytest.mark.asyncio
async def test_execute_permissions(client: AsyncClient, target):
    query_id = await approved_query(client, "SELECT COUNT(*) AS n FROM orders")
    resp = await execute(client, query_id, user="bob")
    assert resp.status_code == 403

    resp = await execute(client, query_id, user="root")
    assert resp.status_code == 200
    assert resp.json()["preview_rows"] == [{"n": 5}]


@pytest.mark.asyncio
async def test_execute_unknown_query(client: AsyncClient, target):
    resp = await execute(client, "missing")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_failed_statement_marks_record_failed(client: AsyncClient, target, target_path):
    before = read_rows(target_path, ORDERS_SQL)
    query_id = await approved_query(client, "UPDATE orders SET no_such_column = 1 WHERE id = 1")

    resp = await execute(client, query_id)
    assert resp.status_code == 200
    result = resp.json()
    assert result["success"] is False
    assert result["status"] == "failed"
    assert "no_such_column" in result["error_message"]

    record = (await client.get(f"/api/queries/{query_id}", headers=as_user("alice"))).json()
    assert record["status"] == "failed"
    assert record["error_message"]
    assert read_rows(target_path, ORDERS_SQL) == before

    # failed is terminal
    assert (await execute(client, query_id)).status_code == 409


@pytest.mark.asyncio
async def test_stale_execute_request_cannot_run_statement_again(client: AsyncClient, target, target_path):
    query_id = await approved_query(client, "UPDATE employees SET salary = salary + 1 WHERE id = 1")
    authorizer = GatedAuthorizer(Action.EXECUTE)
    engine = ExecutionEngine(app.state.pools, authorizer)

    async with async_session() as first, async_session() as second:
        late_caller = await second.get(User, "alice")
        late = asyncio.create_task(engine.execute(second, query_id, late_caller))
        await authorizer.holding.wait()

        result = await engine.execute(first, query_id, await first.get(User, "alice"))
        assert result.success is True

        authorizer.release.set()
        with pytest.raises(InvalidStateError):
            await late

    assert read_rows(target_path, "SELECT salary FROM employees WHERE id = 1") == [(1002,)]
    record = (await client.get(f"/api/queries/{query_id}", headers=as_user("alice"))).json()
    assert record["status"] == "executed"


@pytest.mark.asyncio
async def test_record_moved_on_during_execute(client: AsyncClient, target, target_path):
    query_id = await approved_query(client, "UPDATE orders SET status = 'held' WHERE id = 2")
    app.state.engine = InterferingEngine(app.state.pools, app.state.authorizer, query_id, QueryStatus.FAILED)

    resp = await execute(client, query_id)
    assert resp.status_code == 409
    assert resp.json()["error"] == "InvalidStateError"

    resp = await client.get(f"/api/queries/{query_id}", headers=as_user("alice"))
    assert resp.status_code == 200
    assert resp.json()["status"] == "failed"
    assert (await execute(client, query_id)).status_code == 409


# ── Rollback ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_rollback_requires_elevated_role(client: AsyncClient, target):
    query_id = await approved_query(client, "DELETE FROM orders WHERE id = 3")
    await execute(client, query_id)

    for user in ("alice", "mgr", "bob"):
        resp = await rollback(client, query_id, user=user)
        assert resp.status_code == 403, user

    resp = await rollback(client, query_id, user="root")
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_rollback_only_from_executed(client: AsyncClient, target):
    query_id = await approved_query(client, "DELETE FROM orders WHERE id = 3")
    resp = await rollback(client, query_id)
    assert resp.status_code == 409

    await execute(client, query_id)
    assert (await rollback(client, query_id)).status_code == 200
    resp = await rollback(client, query_id)
    assert resp.status_code == 409
    assert resp.json()["error"] == "InvalidStateError"


@pytest.mark.asyncio
async def test_rollback_without_backup(client: AsyncClient, target, target_path):
    query_id = await approved_query(client, "CREATE TABLE audit_log (id INTEGER, note TEXT)")
    result = (await execute(client, query_id)).json()
    assert result["success"] is True
    assert result["backup_table"] is None

    resp = await rollback(client, query_id)
    assert resp.status_code == 409
    assert resp.json()["error"] == "NotRollbackCapableError"
    assert (await client.get(f"/api/queries/{query_id}", headers=as_user("alice"))).json()["status"] == "executed"


@pytest.mark.asyncio
async def test_failed_restore_leaves_record_executed(client: AsyncClient, target, target_path):
    query_id = await approved_query(client, "UPDATE orders SET amount = 0")
    backup = (await execute(client, query_id)).json()["backup_table"]
    after_execute = read_rows(target_path, ORDERS_SQL)

    # Someone dropped the snapshot behind our back
    await app.state.pools.evict("shop")
    run_sql(target_path, f"DROP TABLE {backup}")

    resp = await rollback(client, query_id)
    assert resp.status_code == 500
    assert resp.json()["error"] == "RollbackError"
    assert (await client.get(f"/api/queries/{query_id}", headers=as_user("alice"))).json()["status"] == "executed"
    assert read_rows(target_path, ORDERS_SQL) == after_execute

    # The claim was dropped, so once the backup is back the restore can be retried
    record = (await client.get(f"/api/queries/{query_id}", headers=as_user("alice"))).json()
    assert record["rolled_back_by"] is None
    await app.state.pools.evict("shop")
    run_sql(target_path, f"CREATE TABLE {backup} AS SELECT * FROM orders")
    assert (await rollback(client, query_id)).status_code == 200


@pytest.mark.asyncio
async def test_stale_rollback_request_does_not_restore_again(client: AsyncClient, target, target_path):
    query_id = await approved_query(client, "UPDATE orders SET amount = 0 WHERE id = 1")
    await execute(client, query_id)
    authorizer = GatedAuthorizer(Action.ROLLBACK)
    engine = ExecutionEngine(app.state.pools, authorizer)

    async with async_session() as first, async_session() as second:
        late_caller = await second.get(User, "skip")
        late = asyncio.create_task(engine.rollback(second, query_id, late_caller))
        await authorizer.holding.wait()

        result = await engine.rollback(first, query_id, await first.get(User, "skip"))
        assert result.status == "rolled_back"
        # Work done on the table after the restore must survive
        run_sql(target_path, "UPDATE orders SET status = 'shipped' WHERE id = 2")

        authorizer.release.set()
        with pytest.raises(InvalidStateError):
            await late

    assert read_rows(target_path, "SELECT amount, status FROM orders WHERE id IN (1, 2) ORDER BY id") == [
        (120, "pending"),
        (75.5, "shipped"),
    ]


@pytest.mark.asyncio
async def test_record_moved_on_during_rollback(client: AsyncClient, target):
    query_id = await approved_query(client, "DELETE FROM orders WHERE id = 4")
    await execute(client, query_id)
    app.state.engine = InterferingEngine(app.state.pools, app.state.authorizer, query_id, QueryStatus.ROLLED_BACK)

    resp = await rollback(client, query_id)
    assert resp.status_code == 409
    assert resp.json()["error"] == "InvalidStateError"

    resp = await client.get(f"/api/queries/{query_id}", headers=as_user("alice"))
    assert resp.status_code == 200
    assert resp.json()["status"] == "rolled_back"


@pytest.mark.asyncio
async def test_execute_and_rollback_on_quoted_table(client: AsyncClient, target, target_path):
    run_sql(target_path, 'CREATE TABLE "order items" (id INTEGER PRIMARY KEY, qty INTEGER)')
    run_sql(target_path, 'INSERT INTO "order items" VALUES (1, 5), (2, 3)')
    await app.state.pools.evict("shop")

    query_id = await approved_query(client, 'UPDATE "order items" SET qty = 6 WHERE id = 1')
    result = (await execute(client, query_id)).json()
    assert result["success"] is True, result["error_message"]
    assert result["backup_table"] == backup_table_name('"order items"', query_id)
    assert read_rows(target_path, 'SELECT qty FROM "order items" ORDER BY id') == [(6,), (3,)]

    resp = await rollback(client, query_id)
    assert resp.status_code == 200
    assert read_rows(target_path, 'SELECT qty FROM "order items" ORDER BY id') == [(5,), (3,)]
