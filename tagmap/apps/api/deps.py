from __future__ import annotations

from fastapi import Depends, Header, Request

from tagmap.core.errors import ProviderConfigError
from tagmap.domain.schemas import ANONYMOUS, Caller
from tagmap.services.container import Services


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise ProviderConfigError("application services are not initialised")
    return services


async def get_caller(
    request: Request,
    authorization: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> Caller:
    # No header means anonymous; write operations reject anonymous callers themselves.
    if not authorization:
        caller = ANONYMOUS
    else:
        caller = await services.auth.verify_caller(authorization)
    request.state.caller_uid = caller.uid
    return caller
