"""Error taxonomy.

Every error carries a short, user-facing message as its ``str()``.  None of
them escapes the package: credential layers turn them into ``None`` and
fetchers turn them into :attr:`UsageSnapshot.error`.
"""
from __future__ import annotations


class UsageMonitorError(Exception):
    """Base class for all errors raised inside the fetch pipeline."""


class CredentialNotFound(UsageMonitorError):
    """No source produced the credential a fetch needs."""


class CredentialExpired(UsageMonitorError):
    """A credential exists but is expired and could not be renewed."""


class DecryptionFailed(UsageMonitorError):
    """The browser cookie store is unreadable, locked, or holds a bad blob or key."""


class Unauthorized(UsageMonitorError):
    """The usage endpoint answered 401."""


class NetworkError(UsageMonitorError):
    """Timeout, DNS, TLS, or a non-401 HTTP error status."""


class ParseError(UsageMonitorError):
    """The response body did not have the expected shape."""
