"""Target registry, connection test and table discovery endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.database import get_db
from sqlgate.deps import get_current_user, get_pool_manager
from sqlgate.schemas.catalog import DiscoverRequest, DiscoveryResult, TableListing
from sqlgate.schemas.target import ConnectionTestResult, TargetCreate, TargetResponse, TargetStatusUpdate
from sqlgate.services import discovery_service, target_service
from sqlgate.services.pool_manager import PoolManager

router = APIRouter()


@router.get("/", response_model=list[TargetResponse])
async def list_targets(category: str | None = None, db: AsyncSession = Depends(get_db)):
    return await target_service.list_targets(db, category=category)


@router.post("/", response_model=TargetResponse, status_code=201, dependencies=[Depends(get_current_user)])
async def register_target(data: TargetCreate, db: AsyncSession = Depends(get_db)):
    return await target_service.register_target(db, data)


@router.get("/{target_id}", response_model=TargetResponse)
async def get_target(target_id: str, db: AsyncSession = Depends(get_db)):
    return await target_service.require_target(db, target_id)


@router.patch("/{target_id}/status", response_model=TargetResponse, dependencies=[Depends(get_current_user)])
async def set_status(target_id: str, body: TargetStatusUpdate, db: AsyncSession = Depends(get_db)):
    return await target_service.set_status(db, target_id, body.status)


@router.post("/{target_id}/test", response_model=ConnectionTestResult)
async def test_connection(
    target_id: str,
    db: AsyncSession = Depends(get_db),
    pools: PoolManager = Depends(get_pool_manager),
):
    target = await target_service.require_target(db, target_id)
    ok = await pools.test_connection(target)
    target = await target_service.record_liveness(db, target, ok)
    return ConnectionTestResult(target_id=target.id, success=ok, checked_at=target.last_checked_at)


@router.get("/{target_id}/tables", response_model=TableListing)
async def list_tables(
    target_id: str,
    db: AsyncSession = Depends(get_db),
    pools: PoolManager = Depends(get_pool_manager),
):
    target = await target_service.require_target(db, target_id)
    return await discovery_service.list_tables(db, pools, target)


@router.post("/{target_id}/discover", response_model=DiscoveryResult, dependencies=[Depends(get_current_user)])
async def discover(
    target_id: str,
    body: DiscoverRequest | None = None,
    db: AsyncSession = Depends(get_db),
    pools: PoolManager = Depends(get_pool_manager),
):
    target = await target_service.require_target(db, target_id)
    schema_filter = body.schema_filter if body else None
    return await discovery_service.discover_tables(db, pools, target, schema_filter)
