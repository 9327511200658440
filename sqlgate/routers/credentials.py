"""Credential management endpoints. Values are write-only."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.database import get_db
from sqlgate.deps import get_current_user, get_pool_manager
from sqlgate.models.user import User
from sqlgate.schemas.credential import CredentialCreate, CredentialResponse, CredentialRotate
from sqlgate.services import credential_service
from sqlgate.services.pool_manager import PoolManager

router = APIRouter(dependencies=[Depends(get_current_user)])


@router.get("/", response_model=list[CredentialResponse])
async def list_credentials(db: AsyncSession = Depends(get_db)):
    return await credential_service.list_credentials(db)


@router.post("/", response_model=CredentialResponse, status_code=201)
async def create_credential(data: CredentialCreate, db: AsyncSession = Depends(get_db)):
    return await credential_service.create_credential(db, data)


@router.put("/{credential_id}", response_model=CredentialResponse)
async def rotate_credential(
    credential_id: str,
    data: CredentialRotate,
    db: AsyncSession = Depends(get_db),
    pools: PoolManager = Depends(get_pool_manager),
):
    credential = await credential_service.rotate_credential(db, credential_id, data, pools)
    if not credential:
        raise HTTPException(status_code=404, detail="Credential not found")
    return credential


@router.delete("/{credential_id}", status_code=204)
async def delete_credential(credential_id: str, db: AsyncSession = Depends(get_db)):
    deleted = await credential_service.delete_credential(db, credential_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Credential not found")
