"""Error taxonomy raised by the account and session core."""

from __future__ import annotations

from typing import Any


class IdentityError(Exception):
    """Base class for failures surfaced by the identity core.

    Parameters
    ----------
    message:
        Human readable description of the failure.
    context:
        Optional structured details (identifiers, purposes) for the boundary layer.
    """

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return self.message


class InvalidInput(IdentityError):
    """A request field is missing or malformed."""


class AlreadyExists(IdentityError):
    """An account with the given identifier is already registered."""


class NotFound(IdentityError):
    """The referenced account or confirmation request does not exist."""


class AuthenticationFailed(IdentityError):
    """Unknown account or wrong password; deliberately undifferentiated."""


class PasswordResetRequired(IdentityError):
    """Credentials are correct but the password must be replaced first."""


class AlreadyRedeemed(IdentityError):
    """The confirmation request was already used."""


class SessionError(IdentityError):
    """Base class for session token rejections."""


class MalformedToken(SessionError):
    pass


class InvalidSignature(SessionError):
    pass


class TokenExpired(SessionError):
    pass


class TemplateRenderError(IdentityError):
    """A notification body could not be rendered."""


class StoreUnavailable(IdentityError):
    """The persistence layer failed to complete the operation."""


class NotifierUnavailable(IdentityError):
    """The outbound notification could not be delivered."""
