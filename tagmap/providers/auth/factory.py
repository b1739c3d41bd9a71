from __future__ import annotations

import json

from tagmap.core.config import Settings, get_settings
from tagmap.core.errors import ProviderConfigError
from tagmap.providers.auth.base import AuthVerifier
from tagmap.providers.auth.jwt_verifier import JwtAuthVerifier
from tagmap.providers.auth.static import StaticTokenVerifier


def get_auth_verifier(settings: Settings | None = None) -> AuthVerifier:
    settings = settings or get_settings()
    provider = (settings.auth_provider or "jwt").lower()

    if provider == "jwt":
        if not settings.auth_jwt_secret:
            raise ProviderConfigError("AUTH_JWT_SECRET is required when AUTH_PROVIDER=jwt")
        return JwtAuthVerifier(
            secret=settings.auth_jwt_secret,
            algorithms=settings.auth_jwt_algorithms,
            audience=settings.auth_jwt_audience,
        )
    if provider == "static":
        tokens = json.loads(settings.auth_static_tokens_json or "{}")
        if not isinstance(tokens, dict):
            raise ProviderConfigError("AUTH_STATIC_TOKENS_JSON must be a JSON object")
        return StaticTokenVerifier({str(k): str(v) for k, v in tokens.items()})

    raise ProviderConfigError(f"Unsupported auth provider: {provider}")
