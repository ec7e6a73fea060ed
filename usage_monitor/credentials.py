"""
Credential Resolution
=====================

Each logical credential (a session cookie, an API token) is looked up through
an ordered chain of sources; the first source that yields a value wins.

A source is a zero-argument callable returning a :class:`ResolvedCredential`
or ``None``.  The factories below build the standard sources, and
:func:`resolve_first` runs a chain.

Manually pasted cookie strings are parsed as ``name=value; name=value``
lists with no escaping, so values containing a literal ``;`` are not
supported.
"""
from __future__ import annotations

import enum
import json
import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, NamedTuple, Sequence

from .browser_cookies import BrowserCredentialVault

log = logging.getLogger(__name__)

GENERIC_COOKIE_NAME = 'Cookie'


class CredentialSource(enum.Enum):
    MANUAL = 'manual'
    ENVIRONMENT = 'environment'
    CONFIG_FILE = 'config_file'
    OAUTH_FILE = 'oauth_file'
    BROWSER_COOKIE = 'browser_cookie'


class ResolvedCredential(NamedTuple):
    """A credential value and where it came from."""

    source: CredentialSource
    name: str
    value: str

    def cookie_header(self) -> str:
        """Render as a ``Cookie`` header value."""
        if self.name == GENERIC_COOKIE_NAME:
            return self.value
        return f'{self.name}={self.value}'


Resolver = Callable[[], ResolvedCredential | None]


class ManualCredentialStore:
    """Provider-keyed map of credentials the user pasted into the settings.

    Written once at startup (or when settings change) and read concurrently
    by fetch threads; writers swap in a new read-only mapping.
    """

    def __init__(self, credentials: Mapping[str, str] | None = None) -> None:
        self._credentials: Mapping[str, str] = MappingProxyType({})
        if credentials:
            self.set_credentials(credentials)

    def set_credentials(self, credentials: Mapping[str, str]) -> None:
        """Replace all stored credentials; empty values are dropped."""
        self._credentials = MappingProxyType({key: value for key, value in credentials.items() if value})

    def get(self, provider_key: str) -> str | None:
        return self._credentials.get(provider_key)


def extract_cookie_value(cookie_string: str, name: str) -> str | None:
    """Return the value of *name* in a ``name=value; name=value`` string (case-insensitive name)."""
    if not cookie_string:
        return None

    for part in cookie_string.split(';'):
        key, sep, value = part.strip().partition('=')
        if sep and key.strip() and key.strip().lower() == name.lower():
            return value.strip()

    return None


# ── Sources ────────────────────────────────────────────────────


def manual_source(store: ManualCredentialStore, provider_key: str, known_names: Sequence[str] = ()) -> Resolver:
    """Source reading the pasted credential for *provider_key*.

    If one of *known_names* can be extracted from the pasted string it is
    returned by name, otherwise the whole string under the generic name.
    """
    def resolve() -> ResolvedCredential | None:
        raw = store.get(provider_key)
        if not raw:
            return None
        for name in known_names:
            value = extract_cookie_value(raw, name)
            if value:
                return ResolvedCredential(CredentialSource.MANUAL, name, value)
        return ResolvedCredential(CredentialSource.MANUAL, GENERIC_COOKIE_NAME, raw.strip())

    return resolve


def environment_source(*variables: str) -> Resolver:
    def resolve() -> ResolvedCredential | None:
        for variable in variables:
            value = os.environ.get(variable, '').strip()
            if value:
                return ResolvedCredential(CredentialSource.ENVIRONMENT, variable, value)
        return None

    return resolve


def config_file_source(path: Path, key: str) -> Resolver:
    """Source reading ``key`` from a JSON object file; unreadable files count as absent."""
    def resolve() -> ResolvedCredential | None:
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            log.debug('Cannot read %s: %s', path, e)
            return None
        value = data.get(key) if isinstance(data, dict) else None
        if isinstance(value, str) and value.strip():
            return ResolvedCredential(CredentialSource.CONFIG_FILE, key, value.strip())
        return None

    return resolve


def browser_cookie_source(vault: BrowserCredentialVault, domain: str, known_names: Sequence[str]) -> Resolver:
    def resolve() -> ResolvedCredential | None:
        for name in known_names:
            value = vault.get_cookie(domain, name)
            if value:
                return ResolvedCredential(CredentialSource.BROWSER_COOKIE, name, value)
        return None

    return resolve


def resolve_first(sources: Iterable[Resolver]) -> ResolvedCredential | None:
    """Run *sources* in order and return the first credential found."""
    for source in sources:
        credential = source()
        if credential is not None:
            return credential
    return None


class CredentialResolver:
    """Resolve session cookies: pasted value first, then the browser."""

    def __init__(self, store: ManualCredentialStore, vault: BrowserCredentialVault) -> None:
        self.store = store
        self.vault = vault

    def resolve(self, provider_key: str, known_names: Sequence[str], domain: str) -> ResolvedCredential | None:
        credential = resolve_first([
            manual_source(self.store, provider_key, known_names),
            browser_cookie_source(self.vault, domain, known_names),
        ])
        if credential is not None:
            log.debug('%s: %s credential from %s', provider_key, credential.name, credential.source.value)
        return credential

    def browser_cookie(self, domain: str, name: str) -> str | None:
        """Look up one auxiliary browser cookie (e.g. Cloudflare clearance)."""
        return self.vault.get_cookie(domain, name)
