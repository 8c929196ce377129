from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class AccountStatus(str, Enum):
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"


class ConfirmationPurpose(str, Enum):
    ACCOUNT_CREATION = "account_creation"
    PASSWORD_RESET = "password_reset"


@dataclass(slots=True)
class Account:
    """Aggregate root for a registered user identity keyed by email address."""

    account_id: str
    name: str
    surname: str
    password_digest: str
    status: AccountStatus
    password_updated_at: datetime
    created_at: datetime
    updated_at: datetime
    must_reset_on_next_login: bool = False


@dataclass(slots=True)
class ConfirmationRequest:
    """Single-use code tying an account to a pending creation or reset action."""

    confirmation_id: str
    account_id: str
    purpose: ConfirmationPurpose
    created_at: datetime
    redeemed: bool = False
    redeemed_at: datetime | None = None
