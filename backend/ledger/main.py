"""Ledger core FastAPI application."""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ledger import __version__
from ledger.config import settings
from ledger.database import Base, async_engine
from ledger.errors import ErrorKind, LedgerError

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

# Error kind → transport status; the only place status codes are decided
ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.AUTHORIZATION: 403,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting ledger API...")

    try:
        async with async_engine.begin() as conn:
            if settings.DB_CREATE_ALL:
                import ledger.models  # noqa: F401  (register tables)

                await conn.run_sync(Base.metadata.create_all)
                logger.info("Database schema verified")
            else:
                await conn.exec_driver_sql("SELECT 1")
        logger.info("Database connection verified")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")

    logger.info("Ledger API started successfully")
    yield

    await async_engine.dispose()
    logger.info("Ledger API shut down")


app = FastAPI(
    title="Ledger",
    description="Multi-tenant double-entry ledger: postings, chart of accounts and integrity audit",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    status_code = ERROR_STATUS[exc.kind]
    if exc.kind is ErrorKind.AUTHORIZATION:
        logger.warning(f"Denied {request.method} {request.url.path}: {exc.message}")
    body = exc.to_dict()
    body["detail"] = exc.message
    return JSONResponse(status_code=status_code, content=body)


# Import and register routers
from ledger.routes import accounts, gl, journals, orgs

app.include_router(orgs.router)
app.include_router(accounts.router)
app.include_router(gl.router)
app.include_router(journals.router)


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "Ledger API", "version": __version__}
