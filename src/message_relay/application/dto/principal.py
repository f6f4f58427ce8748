from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from message_relay.application.exceptions import AuthError


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller identity extracted from JWT."""

    user_id: str

    @classmethod
    def from_claims(cls, claims: dict[str, Any], claim: str = "id") -> Principal:
        """Build a principal from decoded token claims.

        The platform's auth service puts the username in ``id``; standard
        issuers use ``sub``. Either must be a non-empty string or number.
        """
        raw = claims.get(claim)
        if raw is None:
            raw = claims.get("sub")
        if isinstance(raw, bool) or not isinstance(raw, (str, int)):
            raise AuthError("Token carries no user identity")
        user_id = str(raw).strip()
        if not user_id:
            raise AuthError("Token carries no user identity")
        return cls(user_id=user_id)
