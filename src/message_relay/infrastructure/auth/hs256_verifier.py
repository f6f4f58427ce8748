from __future__ import annotations

import jwt

from message_relay.application.dto.principal import Principal
from message_relay.application.exceptions import AuthError


class HS256Verifier:
    """Verify JWTs signed with a shared HS256 secret."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        *,
        user_claim: str = "id",
        require_exp: bool = True,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._user_claim = user_claim
        self._options = {"require": ["exp"]} if require_exp else {}

    async def verify(self, token: str) -> Principal:
        if not token:
            raise AuthError("No token provided")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options=self._options,
            )
        except jwt.PyJWTError as exc:
            raise AuthError(str(exc)) from exc
        return Principal.from_claims(payload, self._user_claim)
