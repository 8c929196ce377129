"""Issuing and validating the signed session tokens carried in the ``token`` cookie."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import jwt

from ..errors import InvalidSignature, MalformedToken, TokenExpired

logger = logging.getLogger(__name__)

SIGNING_ALGORITHM = "HS256"
# Any HMAC variant verifies; other families are rejected as malformed.
ACCEPTED_ALGORITHMS = ["HS256", "HS384", "HS512"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class SessionClaims:
    """Typed view over the claims carried by a session token."""

    subject: str
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class IssuedToken:
    """Encoded token plus the instant it stops being valid."""

    token: str
    expires_at: datetime


class SessionManager:
    """Stateless, sliding-expiration sessions backed by HMAC-signed JWTs.

    There is no server-side revocation list: ``revoke`` only produces an
    already expired token for the client to store in place of its current one.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Store the signing key, session duration and time source."""
        if not secret:
            raise ValueError("session signing secret must not be empty")
        self._secret = secret
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, subject: str) -> IssuedToken:
        """Create a signed token for ``subject`` expiring after the session duration.

        Parameters
        ----------
        subject:
            Account identifier embedded in the token ``sub`` claim.

        Returns
        -------
        IssuedToken
            The encoded JWT and its expiry instant.
        """
        return self._encode(subject, self._clock() + self._ttl)

    def validate(self, token: str) -> SessionClaims:
        """Verify ``token`` and return its claims.

        Raises
        ------
        MalformedToken
            The token cannot be parsed, lacks ``sub``/``exp``, or uses a non-HMAC algorithm.
        InvalidSignature
            The signature does not verify under this manager's secret.
        TokenExpired
            The current time is at or past the ``exp`` claim.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=ACCEPTED_ALGORITHMS,
                options={"require": ["sub", "exp"], "verify_exp": False},
            )
        except jwt.InvalidSignatureError as exc:
            logger.warning("session token rejected: bad signature")
            raise InvalidSignature("token signature verification failed") from exc
        except jwt.InvalidTokenError as exc:
            logger.warning("session token rejected: %s", exc)
            raise MalformedToken(f"malformed token: {exc}") from exc

        claims = self._claims_from_payload(payload)
        if self._clock() >= claims.expires_at:
            raise TokenExpired("session expired", subject=claims.subject)
        return claims

    def refresh(self, token: str) -> IssuedToken:
        """Validate ``token`` and mint a replacement with a renewed expiry."""
        claims = self.validate(token)
        return self.issue(claims.subject)

    def revoke(self) -> IssuedToken:
        """Return a token that is already expired, for the client to overwrite its own."""
        return self._encode("", self._clock() - timedelta(seconds=1))

    def extract_subject(self, token: str) -> str:
        """Return the account identifier of a valid token without extending it."""
        return self.validate(token).subject

    def _encode(self, subject: str, expires_at: datetime) -> IssuedToken:
        exp = int(expires_at.timestamp())
        payload: dict[str, Any] = {"sub": subject, "exp": exp}
        token = jwt.encode(payload, self._secret, algorithm=SIGNING_ALGORITHM)
        return IssuedToken(token=token, expires_at=datetime.fromtimestamp(exp, tz=timezone.utc))

    def _claims_from_payload(self, payload: dict[str, Any]) -> SessionClaims:
        subject = payload.get("sub")
        exp = payload.get("exp")
        if not isinstance(subject, str) or isinstance(exp, bool) or not isinstance(exp, int):
            raise MalformedToken("token claims have unexpected types")
        return SessionClaims(
            subject=subject,
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )
