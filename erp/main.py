import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from erp.core.config import CORS_ORIGINS, DATABASE_URL, ENV
from erp.core.database import Base, engine
from erp.core.errors import register_exception_handlers
from erp.core.logging_setup import configure_logging
from erp.core.startup_checks import ensure_migrations_applied, validate_database_environment
from erp.middleware.observability import ObservabilityMiddleware
import erp.models  # registra los models antes del create_all

from erp.routers.auth import router as auth_router
from erp.routers.users import router as users_router
from erp.routers.companies import router as companies_router
from erp.routers.payments import router as payments_router
from erp.routers.projects import router as projects_router
from erp.routers.accounting import router as accounting_router
from erp.routers.attendance import router as attendance_router
from erp.routers.public_attendance import router as public_attendance_router
from erp.routers.public_invoices import router as public_invoices_router
from erp.routers.generic import router as generic_router

configure_logging()

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini")))


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        if DATABASE_URL.startswith("sqlite"):
            # SQLite local: tablas directas desde los models
            Base.metadata.create_all(bind=engine)
            return
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    except Exception:
        logger.exception("%s startup failed env=%s", STARTUP_PREFIX, ENV)
        raise


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Tenant ERP API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)
register_exception_handlers(app)

# Routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(companies_router)
app.include_router(payments_router)
app.include_router(projects_router)
app.include_router(accounting_router)
app.include_router(attendance_router)
app.include_router(public_attendance_router)
app.include_router(public_invoices_router)
app.include_router(generic_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
