"""Operations exposed to the HTTP layer, composing accounts, confirmations and sessions."""

from __future__ import annotations

import logging

from .account import Account, ConfirmationPurpose, ConfirmationRequest
from .confirmation import ConfirmationWorkflow
from .contracts import ChangePasswordInput, RegisterAccountInput
from .service import AccountService
from .store import AccountStore
from ..errors import InvalidInput
from ..security.tokens import IssuedToken, SessionManager

logger = logging.getLogger(__name__)


class IdentityService:
    """Entry point for signup, confirmation, password and session flows.

    Parameters
    ----------
    store:
        Persistence used to open the units of work that span both workflows.
    accounts:
        Account operations (registration, credentials, passwords).
    confirmations:
        Issue/redeem of confirmation codes.
    sessions:
        Token issuance and validation.
    """

    def __init__(
        self,
        store: AccountStore,
        accounts: AccountService,
        confirmations: ConfirmationWorkflow,
        sessions: SessionManager,
    ) -> None:
        self._store = store
        self._accounts = accounts
        self._confirmations = confirmations
        self._sessions = sessions

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    def register(self, payload: RegisterAccountInput) -> Account:
        """Create the account and its confirmation request, then mail the code.

        The account row, confirmation row and rendered body commit together.
        The mail is sent after commit; if delivery fails the account stays
        pending and ``resend_confirmation`` can be used.
        """
        with self._store.transaction() as tx:
            account = self._accounts.bind(tx).register(payload)
            outgoing = self._confirmations.bind(tx).prepare(account, ConfirmationPurpose.ACCOUNT_CREATION)
        self._confirmations.deliver(outgoing)
        return account

    def resend_confirmation(self, account_id: str) -> ConfirmationRequest:
        return self._confirmations.reissue(account_id, ConfirmationPurpose.ACCOUNT_CREATION)

    def redeem_confirmation(self, confirmation_id: str) -> str:
        return self._confirmations.redeem(confirmation_id, ConfirmationPurpose.ACCOUNT_CREATION)

    def request_password_reset(self, account_id: str) -> ConfirmationRequest:
        return self._confirmations.issue(account_id, ConfirmationPurpose.PASSWORD_RESET)

    def redeem_password_reset(self, confirmation_id: str, new_password: str) -> str:
        """Consume a reset code and store ``new_password`` in the same transaction."""
        if not new_password:
            raise InvalidInput("a new password is required")
        with self._store.transaction() as tx:
            account_id = self._confirmations.bind(tx).redeem(
                confirmation_id, ConfirmationPurpose.PASSWORD_RESET
            )
            self._accounts.bind(tx).set_password(account_id, new_password, force_reset_next=False)
        return account_id

    def change_password(self, payload: ChangePasswordInput) -> Account:
        """Replace a password after checking the current one.

        Only the digest is checked, so accounts whose password has expired can
        still change it.
        """
        if not payload.new_password:
            raise InvalidInput("a new password is required")
        if payload.new_password != payload.new_password_confirm:
            raise InvalidInput("new password and confirmation do not match")
        with self._store.transaction() as tx:
            accounts = self._accounts.bind(tx)
            accounts.authenticate(payload.account_id, payload.current_password)
            return accounts.set_password(payload.account_id, payload.new_password, force_reset_next=False)

    def login(self, account_id: str, password: str) -> IssuedToken:
        self._accounts.verify_credentials(account_id, password)
        logger.info("session opened for %s", account_id)
        return self._sessions.issue(account_id)

    def logout(self, token: str | None = None) -> IssuedToken:
        """Return an expired token; the presented token is not checked."""
        return self._sessions.revoke()

    def validate_session(self, token: str) -> str:
        return self._sessions.extract_subject(token)

    def refresh_session(self, token: str) -> IssuedToken:
        return self._sessions.refresh(token)

    def get_account(self, account_id: str) -> Account:
        return self._accounts.get_account(account_id)

    def delete_account(self, account_id: str) -> None:
        self._accounts.delete_account(account_id)
