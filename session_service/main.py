"""FastAPI application wiring for the session service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.account import ConfirmationPurpose
from .domain.confirmation import ConfirmationWorkflow
from .domain.identity import IdentityService
from .domain.service import AccountService
from .domain.store import AccountStore
from .notifications.mailer import Notifier, SmtpNotifier
from .notifications.templates import default_account_confirmation, default_password_reset
from .repository import AccountRepository
from .security.passwords import PasswordHasher
from .security.tokens import SessionManager

settings = get_settings()


def build_identity_service(
    store: AccountStore,
    notifier: Notifier,
    config: Settings,
) -> IdentityService:
    """Assemble the account, confirmation and session components from settings."""
    accounts = AccountService(
        store,
        PasswordHasher(),
        password_validity=timedelta(days=config.password_validity_days),
    )
    confirmations = ConfirmationWorkflow(
        store,
        {
            ConfirmationPurpose.ACCOUNT_CREATION: default_account_confirmation(config.account_confirmation_url),
            ConfirmationPurpose.PASSWORD_RESET: default_password_reset(config.password_reset_url),
        },
        notifier,
    )
    sessions = SessionManager(config.jwt_secret, ttl=timedelta(seconds=config.session_ttl_seconds))
    return IdentityService(store, accounts, confirmations, sessions)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    repository = AccountRepository(pool)
    repository.create_schema()
    notifier = SmtpNotifier(
        settings.smtp_host,
        settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        sender_alias=settings.mail_sender_alias,
        use_tls=settings.smtp_use_tls,
    )
    app.state.identity_service = build_identity_service(repository, notifier, settings)
    app.state.cookie_secure = settings.cookie_secure
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

# CORS for local frontend dev; credentials are needed for the session cookie
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
