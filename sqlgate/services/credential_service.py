"""Credential service — encrypted passwords referenced by targets."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sqlgate.errors import ConnectivityError, ValidationError
from sqlgate.models.credential import Credential
from sqlgate.models.target import Target
from sqlgate.schemas.credential import CredentialCreate, CredentialRotate
from sqlgate.utils.crypto import decrypt, encrypt

if TYPE_CHECKING:
    from sqlgate.services.pool_manager import PoolManager

logger = logging.getLogger(__name__)


async def list_credentials(db: AsyncSession) -> list[Credential]:
    result = await db.execute(select(Credential).order_by(Credential.id))
    return list(result.scalars().all())


async def get_credential(db: AsyncSession, credential_id: str) -> Credential | None:
    return await db.get(Credential, credential_id)


async def create_credential(db: AsyncSession, data: CredentialCreate) -> Credential:
    if await db.get(Credential, data.id):
        raise ValidationError(f"Credential '{data.id}' already exists")
    credential = Credential(
        id=data.id,
        description=data.description,
        encrypted_value=encrypt(data.value),
    )
    db.add(credential)
    await db.commit()
    await db.refresh(credential)
    return credential


async def rotate_credential(
    db: AsyncSession, credential_id: str, data: CredentialRotate, pools: PoolManager
) -> Credential | None:
    """Store a new password and drop pools still logged in with the old one."""
    credential = await db.get(Credential, credential_id)
    if not credential:
        return None

    credential.encrypted_value = encrypt(data.value)
    await db.commit()
    await db.refresh(credential)

    result = await db.execute(select(Target.id).where(Target.credential_ref == credential_id))
    for target_id in result.scalars():
        await pools.evict(target_id)
        logger.info("Evicted pool for %s after rotating credential %s", target_id, credential_id)
    return credential


async def delete_credential(db: AsyncSession, credential_id: str) -> bool:
    credential = await db.get(Credential, credential_id)
    if not credential:
        return False

    in_use = await db.execute(select(Target.id).where(Target.credential_ref == credential_id))
    users = list(in_use.scalars())
    if users:
        raise ValidationError(f"Credential '{credential_id}' is used by: {', '.join(users)}")

    await db.delete(credential)
    await db.commit()
    return True


async def get_password(db: AsyncSession, credential_ref: str | None) -> str | None:
    """Decrypt the password a target points at (internal use only)."""
    if not credential_ref:
        return None
    credential = await db.get(Credential, credential_ref)
    if not credential:
        raise ConnectivityError(f"Credential '{credential_ref}' is not registered")
    try:
        return decrypt(credential.encrypted_value)
    except ValueError as exc:
        raise ConnectivityError(f"Credential '{credential_ref}' cannot be decrypted") from exc
