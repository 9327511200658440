"""Target registry, discovery and table-listing tests."""

import pytest
from conftest import as_user, run_sql
from httpx import AsyncClient

from sqlgate.main import app


@pytest.mark.asyncio
async def test_register_and_get_target(client: AsyncClient, tmp_path):
    payload = {
        "id": "reporting-1",
        "name": "Reporting",
        "dialect": "sqlite",
        "database": str(tmp_path / "r.db"),
        "category": "reporting",
        "pool_min": 1,
        "pool_max": 3,
    }
    resp = await client.post("/api/targets/", json=payload, headers=as_user("root"))
    assert resp.status_code == 201
    assert resp.json()["category"] == "reporting"

    resp = await client.get("/api/targets/reporting-1")
    assert resp.status_code == 200
    assert resp.json()["pool_max"] == 3

    resp = await client.post("/api/targets/", json=payload, headers=as_user("root"))
    assert resp.status_code == 400

    resp = await client.get("/api/targets/?category=production")
    assert resp.json() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "override",
    [{"dialect": "db2"}, {"pool_min": 5, "pool_max": 2}, {"credential_ref": "NOPE"}],
)
async def test_register_target_validation(client: AsyncClient, override):
    payload = {"id": "bad", "name": "Bad", "dialect": "sqlite", **override}
    resp = await client.post("/api/targets/", json=payload, headers=as_user("root"))
    assert resp.status_code in (400, 422)


@pytest.mark.asyncio
async def test_status_update(client: AsyncClient, target):
    resp = await client.patch(
        "/api/targets/shop/status", json={"status": "maintenance"}, headers=as_user("root")
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "maintenance"


@pytest.mark.asyncio
async def test_connection_test_records_liveness(client: AsyncClient, target):
    resp = await client.post("/api/targets/shop/test")
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    resp = await client.get("/api/targets/shop")
    assert resp.json()["is_reachable"] is True
    assert resp.json()["last_checked_at"] is not None


@pytest.mark.asyncio
async def test_discover_tables_is_idempotent(client: AsyncClient, target):
    resp = await client.post("/api/targets/shop/discover", json={}, headers=as_user("alice"))
    assert resp.status_code == 200
    result = resp.json()
    assert result["source"] == "live"
    assert result["tables_discovered"] == 3
    assert result["tables_added"] == 3
    assert result["skipped"] == []

    tables = {t["table_name"]: t for t in result["tables"]}
    assert tables["pending_orders"]["table_type"] == "VIEW"
    columns = {c["name"]: c for c in tables["orders"]["columns"]}
    assert list(columns) == ["id", "customer", "amount", "status"]
    assert columns["customer"] == {
        "name": "customer", "data_type": "VARCHAR", "length": 64,
        "precision": None, "scale": None, "nullable": False,
    }
    assert columns["amount"]["precision"] == 10
    assert columns["amount"]["scale"] == 2

    resp = await client.post("/api/targets/shop/discover", json={}, headers=as_user("alice"))
    assert resp.json()["tables_discovered"] == 3
    assert resp.json()["tables_added"] == 0


@pytest.mark.asyncio
async def test_list_tables_live_hides_backups(client: AsyncClient, target, target_path):
    run_sql(target_path, "CREATE TABLE orders_BACKUP_0123456789AB AS SELECT * FROM orders")

    resp = await client.get("/api/targets/shop/tables")
    assert resp.status_code == 200
    listing = resp.json()
    assert listing["source"] == "live"
    assert [t["table_name"] for t in listing["tables"]] == ["employees", "orders", "pending_orders"]


@pytest.mark.asyncio
async def test_list_tables_falls_back_to_catalog(client: AsyncClient, db, target, tmp_path):
    await client.post("/api/targets/shop/discover", json={}, headers=as_user("alice"))

    # Target goes away: no cached pool and an unreachable path
    await app.state.pools.evict("shop")
    target.database = str(tmp_path / "gone" / "shop.db")
    await db.commit()

    resp = await client.get("/api/targets/shop/tables")
    assert resp.status_code == 200
    listing = resp.json()
    assert listing["source"] == "catalog"
    assert {t["table_name"] for t in listing["tables"]} == {"employees", "orders", "pending_orders"}
    orders = next(t for t in listing["tables"] if t["table_name"] == "orders")
    assert len(orders["columns"]) == 4

    resp = await client.post("/api/targets/shop/discover", json={}, headers=as_user("alice"))
    assert resp.json()["source"] == "catalog"
    assert resp.json()["tables_added"] == 0


@pytest.mark.asyncio
async def test_unknown_target(client: AsyncClient):
    resp = await client.get("/api/targets/missing/tables")
    assert resp.status_code == 404
