from __future__ import annotations

import hmac

from tagmap.core.errors import AuthenticationError
from tagmap.domain.schemas import Caller
from tagmap.providers.auth.base import strip_bearer


class StaticTokenVerifier:
    def __init__(self, tokens: dict[str, str]) -> None:
        # Fixed token -> uid table for local development and tests.
        self._tokens = dict(tokens)

    async def verify_caller(self, credential: str | None) -> Caller:
        token = strip_bearer(credential)
        if not token:
            raise AuthenticationError("no authorization info in header")
        for known, uid in self._tokens.items():
            if hmac.compare_digest(known, token):
                return Caller(uid=uid, is_logged_in=True)
        raise AuthenticationError("Invalid token")
