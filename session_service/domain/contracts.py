"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class RegisterAccountInput:
    """Inputs required to register a new account."""

    account_id: str
    name: str
    surname: str
    password: str


@dataclass(slots=True)
class ChangePasswordInput:
    """Inputs for replacing a password after checking the current one."""

    account_id: str
    current_password: str
    new_password: str
    new_password_confirm: str
