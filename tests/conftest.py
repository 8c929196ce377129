from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from session_service.api import routes
from session_service.domain.account import Account, ConfirmationPurpose, ConfirmationRequest
from session_service.domain.confirmation import ConfirmationWorkflow
from session_service.domain.identity import IdentityService
from session_service.domain.service import AccountService
from session_service.errors import AlreadyExists, NotifierUnavailable
from session_service.notifications.templates import (
    ConfirmationTemplate,
    default_account_confirmation,
    default_password_reset,
)
from session_service.security.passwords import PasswordHasher
from session_service.security.tokens import SessionManager

SECRET = "test-signing-secret-" + "0123456789abcdef" * 4
CONFIRMATION_URL = "https://app.example.com/#/auth/confirmar_usuario"
RESET_URL = "https://app.example.com/#/auth/confirmar_blanqueo"


class FakeRepository:
    """In-memory store mimicking the Postgres repository's transaction semantics."""

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.confirmations: dict[str, ConfirmationRequest] = {}
        self.lookups: list[tuple[str, bool]] = []
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self):
        with self._lock:
            snapshot = (dict(self.accounts), dict(self.confirmations))
            try:
                yield self
            except BaseException:
                self.accounts, self.confirmations = snapshot
                raise

    def find_account(self, account_id: str):
        with self._lock:
            account = self.accounts.get(account_id)
            return replace(account) if account else None

    def create_account(self, account: Account) -> None:
        with self._lock:
            if account.account_id in self.accounts:
                raise AlreadyExists("duplicate account")
            self.accounts[account.account_id] = replace(account)

    def update_account(self, account: Account) -> None:
        with self._lock:
            self.accounts[account.account_id] = replace(account)

    def delete_account(self, account_id: str) -> bool:
        with self._lock:
            return self.accounts.pop(account_id, None) is not None

    def find_confirmation(self, confirmation_id: str, purpose: ConfirmationPurpose, *, for_update: bool = False):
        with self._lock:
            self.lookups.append((confirmation_id, for_update))
            record = self.confirmations.get(confirmation_id)
            if record is None or record.purpose is not purpose:
                return None
            return replace(record)

    def create_confirmation(self, request: ConfirmationRequest) -> None:
        with self._lock:
            self.confirmations[request.confirmation_id] = replace(request)

    def update_confirmation(self, request: ConfirmationRequest) -> None:
        with self._lock:
            self.confirmations[request.confirmation_id] = replace(request)

    def confirmations_for(self, account_id: str, purpose: ConfirmationPurpose | None = None):
        return [
            record
            for record in self.confirmations.values()
            if record.account_id == account_id and (purpose is None or record.purpose is purpose)
        ]


@dataclass
class SentMessage:
    to: str
    sender: str
    subject: str
    body: str


class FakeNotifier:
    """Records outgoing mail; set ``fail`` to simulate an unreachable relay."""

    def __init__(self) -> None:
        self.sent: list[SentMessage] = []
        self.fail = False

    def sender_alias(self) -> str:
        return "Sesiones <no-reply@example.com>"

    def send(self, to: str, sender: str, subject: str, body: str) -> None:
        if self.fail:
            raise NotifierUnavailable("relay down", to=to)
        self.sent.append(SentMessage(to=to, sender=sender, subject=subject, body=body))


class FrozenClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def build_identity(
    repository: FakeRepository,
    notifier: FakeNotifier,
    *,
    clock: Callable[[], datetime] | None = None,
    password_validity: timedelta = timedelta(days=30),
    creation_template: ConfirmationTemplate | None = None,
) -> IdentityService:
    extra = {"clock": clock} if clock is not None else {}
    accounts = AccountService(repository, PasswordHasher(), password_validity=password_validity, **extra)
    confirmations = ConfirmationWorkflow(
        repository,
        {
            ConfirmationPurpose.ACCOUNT_CREATION: creation_template or default_account_confirmation(CONFIRMATION_URL),
            ConfirmationPurpose.PASSWORD_RESET: default_password_reset(RESET_URL),
        },
        notifier,
        **extra,
    )
    sessions = SessionManager(SECRET, **extra)
    return IdentityService(repository, accounts, confirmations, sessions)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def identity(repository, notifier, clock) -> IdentityService:
    return build_identity(repository, notifier, clock=clock)


@pytest.fixture
def api_client(repository, notifier):
    """Provide a FastAPI test client with isolated state and a wall-clock identity service."""
    service = build_identity(repository, notifier)

    app = FastAPI()
    app.include_router(routes.router)
    app.state.identity_service = service
    app.state.cookie_secure = False

    with TestClient(app) as client:
        yield client, service
