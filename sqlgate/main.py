"""FastAPI application entrypoint."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sqlgate.database import init_db
from sqlgate.errors import RollbackError, SQLGateError
from sqlgate.routers import approvals, credentials, queries, targets, templates
from sqlgate.services.approver_policy import policy_from_settings
from sqlgate.services.authorization import RoleAuthorizer
from sqlgate.services.execution_service import ExecutionEngine
from sqlgate.services.pool_manager import PoolManager

# ── Logging setup ────────────────────────────────────────────────────
_log_level = os.environ.get("SQLGATE_LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=_log_level,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)


def configure_state(app: FastAPI) -> None:
    """Attach the long-lived collaborators the routers depend on."""
    app.state.pools = PoolManager()
    app.state.authorizer = RoleAuthorizer()
    app.state.approver_policy = policy_from_settings()
    app.state.engine = ExecutionEngine(app.state.pools, app.state.authorizer)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    configure_state(app)
    logger.info("SQLGate started")

    yield

    logger.info("Closing target pools …")
    await app.state.pools.close_all()


app = FastAPI(
    title="SQLGate",
    description="Approval workflow and safe execution for SQL against managed databases",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SQLGateError)
async def sqlgate_error_handler(request: Request, exc: SQLGateError):
    if isinstance(exc, RollbackError):
        logger.critical("%s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


app.include_router(targets.router, prefix="/api/targets", tags=["targets"])
app.include_router(queries.router, prefix="/api/queries", tags=["queries"])
app.include_router(approvals.router, prefix="/api/approvals", tags=["approvals"])
app.include_router(credentials.router, prefix="/api/credentials", tags=["credentials"])
app.include_router(templates.router, prefix="/api/templates", tags=["templates"])


@app.get("/health")
async def health(request: Request):
    return {
        "status": "ok",
        "service": "sqlgate",
        "pools": request.app.state.pools.stats(),
    }
