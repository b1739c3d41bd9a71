from __future__ import annotations


class TagMapError(Exception):
    """Base error for tagmap."""


class ValidationError(TagMapError):
    """Malformed or missing required input; reported directly, never retried."""


class NotFoundError(TagMapError):
    """Referenced tag or user does not exist."""


class AuthenticationError(TagMapError):
    """Missing or invalid caller credential."""


class ForbiddenError(TagMapError):
    """Authenticated (or anonymous) caller is not allowed to perform the action."""


class EmptyLedgerError(TagMapError):
    """A tag has no status records; indicates data corruption."""


class NotificationDeliveryError(TagMapError):
    """Best-effort event delivery failed; never propagated to write callers."""


class ProviderConfigError(TagMapError):
    """Missing or invalid collaborator configuration."""
