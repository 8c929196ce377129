"""Persistence contract consumed by the account and confirmation workflows."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Protocol

from .account import Account, ConfirmationPurpose, ConfirmationRequest


class AccountStore(Protocol):
    """Storage for accounts and confirmation requests.

    ``transaction()`` yields a store bound to a single unit of work: writes made
    through it commit together when the block exits normally and roll back when
    it raises. Entering ``transaction()`` on an already bound store nests.
    """

    def find_account(self, account_id: str) -> Account | None: ...

    def create_account(self, account: Account) -> None: ...

    def update_account(self, account: Account) -> None: ...

    def delete_account(self, account_id: str) -> bool: ...

    def find_confirmation(
        self,
        confirmation_id: str,
        purpose: ConfirmationPurpose,
        *,
        for_update: bool = False,
    ) -> ConfirmationRequest | None: ...

    def create_confirmation(self, request: ConfirmationRequest) -> None: ...

    def update_confirmation(self, request: ConfirmationRequest) -> None: ...

    def transaction(self) -> AbstractContextManager["AccountStore"]: ...
