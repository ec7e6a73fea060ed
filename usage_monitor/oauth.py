"""
OAuth Credentials
=================

Loads, refreshes and persists the OAuth credential files that provider CLIs
(Claude Code, Codex CLI, Gemini CLI) keep in the user's home directory.

The file on disk is the source of truth: nothing is cached between calls.
Subclasses describe the provider's JSON layout through :meth:`parse` and
:meth:`serialize`; writes are read-merge-write so fields this package does
not know about survive a refresh, and they are atomic so a concurrent reader
never sees a half-written file.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

import requests

from . import config
from .logs import mask
from .models import seconds_from_now, utcnow

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class OAuthCredential:
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scopes: tuple[str, ...] = ()
    subscription_type: str | None = None
    account_id: str | None = None
    is_api_key: bool = False

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at < utcnow()

    def has_scope(self, scope: str) -> bool:
        return scope in self.scopes


def to_epoch_ms(value: datetime | None) -> int | None:
    return int(value.timestamp() * 1000) if value is not None else None


def atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    """Write *data* to *path* via a temporary sibling file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f'.{path.name}.', suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except Exception:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


class OAuthCredentialManager:
    """Credential file of one provider.

    Parameters
    ----------
    paths : sequence of Path
        Candidate file locations; the first existing one is used.
    session : requests.Session, optional
        HTTP session for token refresh calls.
    timeout : float
        Timeout of a refresh request in seconds.
    """

    name = 'oauth'
    token_url = ''
    client_id = ''

    _locks: dict[Path, threading.Lock] = {}
    _locks_guard = threading.Lock()

    def __init__(
        self, paths: Sequence[Path], session: requests.Session | None = None, timeout: float = config.TIMEOUT_REFRESH,
    ) -> None:
        self.paths = tuple(paths)
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def path(self) -> Path:
        for path in self.paths:
            if path.is_file():
                return path
        return self.paths[0]

    # ── Format hooks ───────────────────────────────────────────

    def parse(self, data: dict[str, Any]) -> OAuthCredential | None:
        """Build a credential from the file's JSON object."""
        raise NotImplementedError

    def serialize(self, data: dict[str, Any], credential: OAuthCredential) -> dict[str, Any]:
        """Merge *credential* into the JSON object read from disk and return it."""
        raise NotImplementedError

    def refresh_params(self, credential: OAuthCredential) -> dict[str, str] | None:
        """Form body of the refresh request, or None if refreshing is impossible."""
        return {
            'grant_type': 'refresh_token',
            'refresh_token': credential.refresh_token or '',
            'client_id': self.client_id,
        }

    def expiry_after_refresh(self, payload: dict[str, Any], credential: OAuthCredential) -> datetime | None:
        return seconds_from_now(payload.get('expires_in')) or credential.expires_at

    # ── Operations ─────────────────────────────────────────────

    def read_file(self) -> dict[str, Any] | None:
        path = self.path
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            log.debug('%s: cannot read %s: %s', self.name, path, e)
            return None
        return data if isinstance(data, dict) else None

    def load(self) -> OAuthCredential | None:
        """Load the credential from disk; a missing or malformed file yields None."""
        data = self.read_file()
        if data is None:
            return None
        try:
            return self.parse(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            log.debug('%s: unexpected credential layout: %s', self.name, e)
            return None

    def refresh(self, credential: OAuthCredential) -> OAuthCredential | None:
        """Exchange the refresh token for a new access token.

        Returns a new credential, or None on any failure.  *credential* is
        never modified.
        """
        if not credential.refresh_token or credential.is_api_key:
            return None
        params = self.refresh_params(credential)
        if params is None:
            return None

        try:
            resp = self.session.request(
                'POST', self.token_url, data=params,
                headers={'Accept': 'application/json', 'User-Agent': config.USER_AGENT},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            log.warning('%s: token refresh request failed: %s', self.name, e)
            return None

        if not resp.ok:
            log.warning('%s: token refresh rejected with HTTP %s', self.name, resp.status_code)
            return None

        try:
            payload = resp.json()
        except ValueError:
            log.warning('%s: token refresh returned invalid JSON', self.name)
            return None

        access_token = payload.get('access_token') if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token:
            log.warning('%s: token refresh response has no access_token', self.name)
            return None

        log.info('%s: access token refreshed (%s)', self.name, mask(access_token))
        return replace(
            credential,
            access_token=access_token,
            refresh_token=payload.get('refresh_token') or credential.refresh_token,
            expires_at=self.expiry_after_refresh(payload, credential),
        )

    def save(self, credential: OAuthCredential) -> bool:
        """Persist *credential*, keeping every unrelated field already in the file."""
        path = self.path
        data = self.serialize(self.read_file() or {}, credential)
        try:
            atomic_write_json(path, data)
        except OSError as e:
            log.warning('%s: cannot write %s: %s', self.name, path, e)
            return False
        log.debug('%s: saved refreshed credential to %s', self.name, path)
        return True

    def refresh_and_save(self, credential: OAuthCredential) -> OAuthCredential | None:
        """Refresh *credential* and persist the result.

        Serialized per file: if another thread already replaced the token
        while this one waited, the fresh token from disk is returned instead.
        """
        with self._lock():
            current = self.load()
            if current is not None and current.access_token != credential.access_token and not current.is_expired:
                return current

            refreshed = self.refresh(current or credential)
            if refreshed is None:
                return None
            self.save(refreshed)
            return refreshed

    def load_with_auto_refresh(self) -> OAuthCredential | None:
        """Load the credential, refreshing and persisting it first if it has expired."""
        credential = self.load()
        if credential is None or not credential.is_expired:
            return credential

        if not credential.refresh_token:
            log.info('%s: access token expired and no refresh token available', self.name)
            return None

        log.info('%s: access token expired, refreshing', self.name)
        return self.refresh_and_save(credential)

    def _lock(self) -> threading.Lock:
        key = self.path.resolve()
        with self._locks_guard:
            return self._locks.setdefault(key, threading.Lock())
