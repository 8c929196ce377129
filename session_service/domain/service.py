"""Account service owning registration, credential checks and password replacement."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from .account import Account, AccountStatus
from .contracts import RegisterAccountInput
from .store import AccountStore
from ..errors import AlreadyExists, AuthenticationFailed, InvalidInput, NotFound, PasswordResetRequired
from ..security.passwords import PasswordHasher

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD_VALIDITY = timedelta(days=30)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountService:
    """Account workflows backed by an ``AccountStore``.

    ``password_validity`` of zero disables password expiry.
    """

    def __init__(
        self,
        store: AccountStore,
        hasher: PasswordHasher | None = None,
        *,
        password_validity: timedelta = DEFAULT_PASSWORD_VALIDITY,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Store dependencies used to orchestrate persistence and hashing."""
        self._store = store
        self._hasher = hasher or PasswordHasher()
        self._password_validity = password_validity
        self._clock = clock

    def bind(self, store: AccountStore) -> "AccountService":
        """Return the same service operating on ``store`` (typically a transaction)."""
        return AccountService(
            store,
            self._hasher,
            password_validity=self._password_validity,
            clock=self._clock,
        )

    def register(self, payload: RegisterAccountInput) -> Account:
        """Persist a new account pending confirmation.

        Sending the confirmation mail is left to the caller so both writes can
        share one unit of work.
        """
        account_id = payload.account_id.strip()
        name = payload.name.strip()
        if not account_id:
            raise InvalidInput("an email address is required")
        if not name:
            raise InvalidInput("a name is required")
        if self._store.find_account(account_id) is not None:
            raise AlreadyExists(f"an account already exists for {account_id}", account_id=account_id)

        now = self._clock()
        account = Account(
            account_id=account_id,
            name=name,
            surname=payload.surname.strip(),
            password_digest=self._hasher.digest(payload.password),
            status=AccountStatus.PENDING_CONFIRMATION,
            password_updated_at=now,
            created_at=now,
            updated_at=now,
            must_reset_on_next_login=False,
        )
        self._store.create_account(account)
        logger.info("account %s registered pending confirmation", account_id)
        return account

    def get_account(self, account_id: str) -> Account:
        account = self._store.find_account(account_id)
        if account is None:
            raise NotFound(f"no account for {account_id}", account_id=account_id)
        return account

    def authenticate(self, account_id: str, password: str) -> Account:
        """Check the password digest only; freshness policy is not applied.

        Unknown accounts and wrong passwords raise the same error.
        """
        account = self._store.find_account(account_id)
        if account is None or not self._hasher.compare(password, account.password_digest):
            logger.warning("authentication failed for %s", account_id)
            raise AuthenticationFailed("wrong account or password")
        return account

    def verify_credentials(self, account_id: str, password: str) -> Account:
        """Authenticate and enforce the password freshness policy."""
        account = self.authenticate(account_id, password)
        if account.must_reset_on_next_login:
            raise PasswordResetRequired("password must be reset", account_id=account_id)
        if not self.is_password_current(account):
            raise PasswordResetRequired("password has expired", account_id=account_id)
        return account

    def is_password_current(self, account: Account) -> bool:
        if not self._password_validity:
            return True
        return self._clock() < account.password_updated_at + self._password_validity

    def set_password(self, account_id: str, new_password: str, force_reset_next: bool = False) -> Account:
        """Overwrite the password without checking the previous one."""
        account = self.get_account(account_id)
        now = self._clock()
        account.password_digest = self._hasher.digest(new_password)
        account.password_updated_at = now
        account.must_reset_on_next_login = force_reset_next
        account.updated_at = now
        self._store.update_account(account)
        logger.info("password replaced for %s (reset on next login: %s)", account_id, force_reset_next)
        return account

    def delete_account(self, account_id: str) -> None:
        """Administrative removal; confirmation requests are kept."""
        if not self._store.delete_account(account_id):
            raise NotFound(f"no account for {account_id}", account_id=account_id)
        logger.info("account %s deleted", account_id)
