from __future__ import annotations

import logging

import jwt
from jwt import PyJWKClient

from message_relay.application.dto.principal import Principal
from message_relay.application.exceptions import AuthError

logger = logging.getLogger(__name__)


class JWKSVerifier:
    """Verify JWTs using a remote JWKS endpoint."""

    def __init__(
        self,
        jwks_url: str,
        *,
        user_claim: str = "id",
        require_exp: bool = True,
    ) -> None:
        self._jwks_url = jwks_url
        self._jwk_client = PyJWKClient(jwks_url)
        self._user_claim = user_claim
        self._options = {"require": ["exp"]} if require_exp else {}

    async def verify(self, token: str) -> Principal:
        if not token:
            raise AuthError("No token provided")
        try:
            signing_key = self._jwk_client.get_signing_key_from_jwt(token)
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256", "ES256"],
                options=self._options,
            )
        except jwt.PyJWTError as exc:
            logger.debug("JWKS verification failed against %s: %s", self._jwks_url, exc)
            raise AuthError(str(exc)) from exc
        return Principal.from_claims(payload, self._user_claim)
