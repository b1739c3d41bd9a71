from __future__ import annotations

import logging

import jwt

from tagmap.core.errors import AuthenticationError
from tagmap.domain.schemas import Caller
from tagmap.providers.auth.base import strip_bearer


logger = logging.getLogger(__name__)


class JwtAuthVerifier:
    def __init__(
        self,
        *,
        secret: str,
        algorithms: list[str] | None = None,
        audience: str | None = None,
    ) -> None:
        self._secret = secret
        self._algorithms = algorithms or ["HS256"]
        self._audience = audience

    async def verify_caller(self, credential: str | None) -> Caller:
        token = strip_bearer(credential)
        if not token:
            raise AuthenticationError("no authorization info in header")
        options = {"require": ["exp"], "verify_aud": self._audience is not None}
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=self._algorithms,
                audience=self._audience,
                options=options,
            )
        except jwt.PyJWTError as exc:
            logger.info("auth_token_rejected reason=%s", type(exc).__name__)
            raise AuthenticationError("Invalid or expired token") from exc
        uid = claims.get("uid") or claims.get("sub")
        if not uid:
            raise AuthenticationError("Token carries no subject")
        return Caller(
            uid=str(uid),
            is_logged_in=True,
            email=claims.get("email"),
            display_name=claims.get("name"),
        )
