"""Password digests stored alongside accounts."""

from __future__ import annotations

import hashlib
import hmac


class PasswordHasher:
    """Unsalted SHA-256 digests, compatible with the digests already on record.

    A salted, slow hash would be stronger; switching requires migrating every
    stored digest.
    """

    def digest(self, cleartext: str) -> str:
        """Return the hex SHA-256 digest of ``cleartext``."""
        return hashlib.sha256(cleartext.encode("utf-8")).hexdigest()

    def compare(self, cleartext: str, digest: str) -> bool:
        """Return ``True`` when ``cleartext`` hashes to ``digest``."""
        return hmac.compare_digest(self.digest(cleartext), digest)
