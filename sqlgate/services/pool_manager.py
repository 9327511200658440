"""Per-target connection pools.

One SQLAlchemy ``AsyncEngine`` per registered target, created lazily on first
use and reused afterwards. The manager is an ordinary object: the application
builds one in its lifespan and closes it on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from sqlgate.adapters.dialects import get_dialect
from sqlgate.config import settings
from sqlgate.database import async_session
from sqlgate.errors import ConnectivityError
from sqlgate.models.target import Target
from sqlgate.services import credential_service

logger = logging.getLogger(__name__)

CredentialResolver = Callable[[Target], Awaitable[str | None]]

# Raised by drivers and the pool when a target cannot be reached in time.
_CONNECT_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


async def resolve_credential(target: Target) -> str | None:
    async with async_session() as db:
        return await credential_service.get_password(db, target.credential_ref)


class PoolManager:
    """Owns at most one pool per target id."""

    def __init__(
        self,
        *,
        credential_resolver: CredentialResolver = resolve_credential,
        min_size: int | None = None,
        max_size: int | None = None,
        timeout: float | None = None,
        idle_timeout: int | None = None,
        probe_timeout: float | None = None,
    ):
        self._resolve_credential = credential_resolver
        self.min_size = min_size if min_size is not None else settings.pool_min_size
        self.max_size = max_size if max_size is not None else settings.pool_max_size
        self.timeout = timeout if timeout is not None else settings.pool_timeout
        self.idle_timeout = idle_timeout if idle_timeout is not None else settings.pool_idle_timeout
        self.probe_timeout = probe_timeout if probe_timeout is not None else settings.probe_timeout
        self._pools: dict[str, AsyncEngine] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # ── Pool lifecycle ────────────────────────────────────────────

    def _sizing(self, target: Target) -> tuple[int, int, float]:
        low = target.pool_min if target.pool_min is not None else self.min_size
        high = target.pool_max if target.pool_max is not None else self.max_size
        timeout = target.pool_timeout if target.pool_timeout is not None else self.timeout
        low = max(low, 1)
        return low, max(high, low), timeout

    def _engine_options(self, target: Target) -> dict:
        if target.dialect == "sqlite" and target.database in ("", ":memory:"):
            return {}  # single shared connection, no sizing to apply
        low, high, timeout = self._sizing(target)
        return {
            "pool_size": low,
            "max_overflow": high - low,
            "pool_timeout": timeout,
            "pool_recycle": self.idle_timeout,
            "pool_pre_ping": True,
        }

    async def _build_engine(self, target: Target) -> AsyncEngine:
        dialect = get_dialect(target.dialect)
        password = await self._resolve_credential(target)
        url = dialect.connection_url(target, password)
        engine = create_async_engine(url, **self._engine_options(target))

        # Open the minimum number of connections up front so a bad host or
        # password fails here instead of on the first real statement.
        warm = self._sizing(target)[0]
        conns: list[AsyncConnection] = []
        ready = False
        try:
            async with asyncio.timeout(self.probe_timeout):
                for _ in range(warm):
                    conn = await engine.connect()
                    conns.append(conn)
                    await dialect.probe(conn)
            ready = True
        except _CONNECT_ERRORS as exc:
            raise ConnectivityError(f"Cannot create pool for target '{target.id}': {exc}") from exc
        finally:
            # Also runs when warm-up is cancelled.
            for conn in conns:
                await asyncio.shield(conn.close())
            if not ready:
                await asyncio.shield(engine.dispose())
        return engine

    async def get_or_create_pool(self, target: Target) -> AsyncEngine:
        """Return the cached pool for ``target``, creating it exactly once."""
        engine = self._pools.get(target.id)
        if engine is not None:
            return engine

        lock = self._locks.setdefault(target.id, asyncio.Lock())
        async with lock:
            engine = self._pools.get(target.id)
            if engine is None:
                engine = await self._build_engine(target)
                self._pools[target.id] = engine
                low, high, _ = self._sizing(target)
                logger.info("Pool created for %s (%s, min=%d max=%d)", target.id, target.dialect, low, high)
        return engine

    def has_pool(self, target_id: str) -> bool:
        return target_id in self._pools

    async def evict(self, target_id: str) -> None:
        engine = self._pools.pop(target_id, None)
        if engine is not None:
            await engine.dispose()
            logger.info("Pool closed for %s", target_id)

    async def close_all(self, grace: float | None = None) -> None:
        """Dispose every pool, giving each at most ``grace`` seconds to drain."""
        grace = grace if grace is not None else settings.pool_close_grace
        pools, self._pools = self._pools, {}
        for target_id, engine in pools.items():
            try:
                await asyncio.wait_for(engine.dispose(), timeout=grace)
                logger.info("Pool closed for %s", target_id)
            except _CONNECT_ERRORS as exc:
                logger.error("Error closing pool for %s: %s", target_id, exc)
        self._locks.clear()

    def stats(self) -> dict[str, str]:
        return {target_id: engine.pool.status() for target_id, engine in self._pools.items()}

    # ── Connections ───────────────────────────────────────────────

    @asynccontextmanager
    async def acquire(self, target: Target) -> AsyncIterator[AsyncConnection]:
        """Check a connection out of the target's pool; always checks it back in."""
        engine = await self.get_or_create_pool(target)
        try:
            conn = await engine.connect()
        except _CONNECT_ERRORS as exc:
            raise ConnectivityError(f"No connection available for target '{target.id}': {exc}") from exc
        try:
            yield conn
        finally:
            # Shielded so a cancelled caller still returns the connection.
            await asyncio.shield(conn.close())

    async def test_connection(self, target: Target) -> bool:
        """Probe ``target`` over a throwaway connection; the cached pool is untouched."""
        engine: AsyncEngine | None = None
        try:
            dialect = get_dialect(target.dialect)
            password = await self._resolve_credential(target)
            engine = create_async_engine(dialect.connection_url(target, password), poolclass=NullPool)
            async with asyncio.timeout(self.probe_timeout):
                async with engine.connect() as conn:
                    return await dialect.probe(conn)
        except (*_CONNECT_ERRORS, ConnectivityError) as exc:
            logger.warning("Connection test failed for %s: %s", target.id, exc)
            return False
        finally:
            if engine is not None:
                await engine.dispose()
