"""Error taxonomy for the walking-tour core."""
from __future__ import annotations

from typing import Optional


class WandererError(Exception):
    """Base class for every error raised by the core."""


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------

class LocationError(WandererError):
    pass


class PermissionDenied(LocationError):
    """The user refused location access."""


class LocationUnavailable(LocationError):
    """No fix could be obtained (no signal, service off, timeout)."""


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

class ProviderError(WandererError):
    def __init__(self, message: str, provider: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status = status


class ProviderQuotaExceeded(ProviderError):
    """Key is over quota or rejected; the next key may still work."""


class ProviderInvalidRequest(ProviderError):
    """The provider refused the request itself; retrying will not help."""


class ProviderInvalidResponse(ProviderError):
    """The provider answered but the payload could not be understood."""


class NetworkError(ProviderError):
    """Transient transport failure (timeout, connection reset, 5xx)."""


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class NoKeysConfigured(WandererError):
    def __init__(self, provider: str, message: Optional[str] = None):
        super().__init__(message or f"No API keys configured for '{provider}'")
        self.provider = provider


class KeysExhausted(NoKeysConfigured):
    def __init__(self, provider: str):
        super().__init__(provider, f"All API keys for '{provider}' are exhausted")


# ---------------------------------------------------------------------------
# Story
# ---------------------------------------------------------------------------

class StoryParseFailure(WandererError):
    """The narrative provider's text did not contain a usable story."""


class InvalidChoice(WandererError):
    """A choice was selected that the current segment does not offer."""
