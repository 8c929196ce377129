"""Single-use confirmation codes for account creation and password reset."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping

from .account import Account, AccountStatus, ConfirmationPurpose, ConfirmationRequest
from .store import AccountStore
from ..errors import AlreadyRedeemed, NotFound
from ..notifications.mailer import Notifier
from ..notifications.templates import ConfirmationTemplate

logger = logging.getLogger(__name__)

SUBJECTS: dict[ConfirmationPurpose, str] = {
    ConfirmationPurpose.ACCOUNT_CREATION: "Confirmación de usuario",
    ConfirmationPurpose.PASSWORD_RESET: "Confirmación de blanqueo de contraseña",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class OutgoingConfirmation:
    """A persisted request together with the mail that announces it."""

    request: ConfirmationRequest
    recipient: str
    subject: str
    body: str


class ConfirmationWorkflow:
    """Issue and redeem confirmation requests.

    Requests move from issued to redeemed exactly once. They do not expire and
    issuing a new one leaves earlier ones of the same purpose valid.
    """

    def __init__(
        self,
        store: AccountStore,
        templates: Mapping[ConfirmationPurpose, ConfirmationTemplate],
        notifier: Notifier,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        missing = [purpose.value for purpose in ConfirmationPurpose if purpose not in templates]
        if missing:
            raise ValueError(f"missing confirmation templates: {', '.join(missing)}")
        self._store = store
        self._templates = dict(templates)
        self._notifier = notifier
        self._clock = clock

    def bind(self, store: AccountStore) -> "ConfirmationWorkflow":
        """Return the same workflow operating on ``store`` (typically a transaction)."""
        return ConfirmationWorkflow(store, self._templates, self._notifier, clock=self._clock)

    def prepare(self, account: Account, purpose: ConfirmationPurpose) -> OutgoingConfirmation:
        """Persist a fresh request for ``account`` and render its mail body.

        Rendering happens before returning so a template failure aborts the
        caller's unit of work along with the inserted row.
        """
        request = ConfirmationRequest(
            confirmation_id=str(uuid.uuid4()),
            account_id=account.account_id,
            purpose=purpose,
            created_at=self._clock(),
        )
        self._store.create_confirmation(request)
        body = self._templates[purpose].render(account.name, request.confirmation_id)
        return OutgoingConfirmation(
            request=request,
            recipient=account.account_id,
            subject=SUBJECTS[purpose],
            body=body,
        )

    def deliver(self, outgoing: OutgoingConfirmation) -> None:
        """Send the mail for a prepared request; delivery errors propagate."""
        self._notifier.send(
            outgoing.recipient,
            self._notifier.sender_alias(),
            outgoing.subject,
            outgoing.body,
        )
        logger.info(
            "%s confirmation sent to %s",
            outgoing.request.purpose.value,
            outgoing.recipient,
        )

    def issue(self, account_id: str, purpose: ConfirmationPurpose) -> ConfirmationRequest:
        """Create a request for an existing account and mail it after commit."""
        with self._store.transaction() as tx:
            account = tx.find_account(account_id)
            if account is None:
                raise NotFound(f"no account for {account_id}", account_id=account_id)
            outgoing = self.bind(tx).prepare(account, purpose)
        self.deliver(outgoing)
        return outgoing.request

    def reissue(self, account_id: str, purpose: ConfirmationPurpose) -> ConfirmationRequest:
        return self.issue(account_id, purpose)

    def redeem(self, confirmation_id: str, purpose: ConfirmationPurpose) -> str:
        """Mark a request redeemed and return its account identifier.

        Redeeming an account-creation request also confirms the account within
        the same transaction.
        """
        with self._store.transaction() as tx:
            request = tx.find_confirmation(confirmation_id, purpose, for_update=True)
            if request is None:
                raise NotFound(
                    "no confirmation request matches",
                    confirmation_id=confirmation_id,
                    purpose=purpose.value,
                )
            if request.redeemed:
                raise AlreadyRedeemed(
                    "confirmation request was already used",
                    confirmation_id=confirmation_id,
                )

            now = self._clock()
            request.redeemed = True
            request.redeemed_at = now
            tx.update_confirmation(request)

            if purpose is ConfirmationPurpose.ACCOUNT_CREATION:
                account = tx.find_account(request.account_id)
                if account is None:
                    raise NotFound(
                        f"no account for {request.account_id}",
                        account_id=request.account_id,
                    )
                if account.status is not AccountStatus.CONFIRMED:
                    account.status = AccountStatus.CONFIRMED
                    account.updated_at = now
                    tx.update_account(account)

        logger.info("%s confirmation redeemed for %s", purpose.value, request.account_id)
        return request.account_id
