"""
Browser Cookies
===============

Reads session cookies from a Chromium-family profile (Chrome, Edge, Brave)
while the browser is running.

The browser keeps its ``Cookies`` SQLite database open with an exclusive lock,
so the database is first opened in SQLite's ``immutable`` mode and, if that
fails, copied to a private temporary file with share-everything read access.

Cookie values are AES-256-GCM encrypted (``v10``/``v11`` blobs) with a master
key that is itself DPAPI-wrapped in the browser's ``Local State`` file; very
old cookies are DPAPI-wrapped directly.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import shutil
import sqlite3
import tempfile
import time
import uuid
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from . import config, winapi
from .errors import DecryptionFailed

log = logging.getLogger(__name__)

COOKIE_QUERY = (
    'SELECT encrypted_value, value FROM cookies '
    'WHERE host_key LIKE ? AND name = ? '
    'ORDER BY last_access_utc DESC LIMIT 1'
)
VERSION_TAGS = (b'v10', b'v11')
NONCE_SIZE = 12
TAG_SIZE = 16


@dataclass(frozen=True)
class BrowserProfile:
    """A Chromium ``User Data`` directory."""

    name: str
    user_data_dir: Path

    @property
    def local_state(self) -> Path:
        return self.user_data_dir / config.LOCAL_STATE_FILE

    def cookie_databases(self) -> list[Path]:
        return [self.user_data_dir / candidate for candidate in config.COOKIE_DB_CANDIDATES]


DEFAULT_PROFILES = tuple(BrowserProfile(name, path) for name, path in config.BROWSER_USER_DATA_DIRS)


def _connect_read_only(path: Path, immutable: bool = False) -> sqlite3.Connection:
    uri = f'{path.resolve().as_uri()}?mode=ro'
    if immutable:
        uri += '&immutable=1'
    return sqlite3.connect(uri, uri=True)


def _query(conn: sqlite3.Connection, domain: str, cookie_name: str) -> tuple[bytes | None, str | None] | None:
    return conn.execute(COOKIE_QUERY, (f'%{domain}%', cookie_name)).fetchone()


class BrowserCredentialVault:
    """Look up decrypted cookie values in the first installed Chromium browser.

    Parameters
    ----------
    profiles : iterable of BrowserProfile, optional
        Browsers to consider, in priority order.
    unprotect : callable, optional
        DPAPI-equivalent unwrap function; defaults to :func:`winapi.unprotect`.
    temp_dir : Path, optional
        Where temporary database copies are placed.
    """

    def __init__(
        self,
        profiles: Iterable[BrowserProfile] = DEFAULT_PROFILES,
        unprotect: Callable[[bytes], bytes] = winapi.unprotect,
        temp_dir: Path | None = None,
    ) -> None:
        self.profiles = tuple(profiles)
        self._unprotect = unprotect
        self.temp_dir = temp_dir

    def get_cookie(self, domain: str, cookie_name: str) -> str | None:
        """Return the newest value of *cookie_name* for *domain*, or None.

        Never raises: every I/O, lock and decryption failure yields None.
        """
        try:
            located = self.locate()
            if located is None:
                log.debug('No Chromium cookie database found')
                return None
            profile, database = located

            row = self._read_row(database, domain, cookie_name)
            if row is None:
                return None
            return self.decode_row(row, profile)
        except DecryptionFailed as e:
            log.debug('Cookie %s for %s unavailable: %s', cookie_name, domain, e)
            return None
        except Exception:
            log.exception('Unexpected error reading cookie %s for %s', cookie_name, domain)
            return None

    def locate(self) -> tuple[BrowserProfile, Path] | None:
        """Return the first existing cookie database and the profile it belongs to."""
        for profile in self.profiles:
            for database in profile.cookie_databases():
                if database.is_file():
                    return profile, database
        return None

    def master_key(self, profile: BrowserProfile) -> bytes:
        """Unwrap the AES master key stored in the profile's ``Local State``.

        Raises
        ------
        DecryptionFailed
            If the file, the key entry, its ``DPAPI`` tag or the unwrap is missing or invalid.
        """
        try:
            state = json.loads(profile.local_state.read_text(encoding='utf-8'))
            encoded = state['os_crypt']['encrypted_key']
            wrapped = base64.b64decode(encoded, validate=True)
        except (OSError, ValueError, KeyError, TypeError, binascii.Error) as e:
            raise DecryptionFailed(f'{profile.name}: no usable os_crypt.encrypted_key') from e

        prefix = config.DPAPI_KEY_PREFIX
        if len(wrapped) <= len(prefix) or not wrapped.startswith(prefix):
            raise DecryptionFailed(f'{profile.name}: master key lacks the DPAPI tag')

        try:
            return self._unprotect(wrapped[len(prefix):])
        except (OSError, ValueError) as e:
            raise DecryptionFailed(f'{profile.name}: master key unwrap failed') from e

    # ── Reading the locked database ────────────────────────────

    def _read_row(self, database: Path, domain: str, cookie_name: str) -> tuple[bytes | None, str | None] | None:
        try:
            return self._query_immutable(database, domain, cookie_name)
        except (sqlite3.Error, OSError) as e:
            log.debug('Immutable read of %s failed (%s), copying instead', database, e)

        try:
            return self._query_copy(database, domain, cookie_name)
        except (sqlite3.Error, OSError) as e:
            raise DecryptionFailed(f'cannot read {database}') from e

    def _query_immutable(self, database: Path, domain: str, cookie_name: str) -> tuple[bytes | None, str | None] | None:
        with closing(_connect_read_only(database, immutable=True)) as conn:
            return _query(conn, domain, cookie_name)

    def _query_copy(self, database: Path, domain: str, cookie_name: str) -> tuple[bytes | None, str | None] | None:
        temp_dir = self.temp_dir or Path(tempfile.gettempdir())
        copy = temp_dir / f'usage_monitor_cookies_{uuid.uuid4().hex}.db'
        try:
            self._copy_with_retries(database, copy)
            with closing(_connect_read_only(copy)) as conn:
                return _query(conn, domain, cookie_name)
        finally:
            try:
                copy.unlink(missing_ok=True)
            except OSError as e:
                log.warning('Could not delete temporary cookie copy %s: %s', copy, e)

    def _copy_with_retries(self, source: Path, destination: Path) -> None:
        """Copy a database that may be mid-write, retrying with linear backoff."""
        for attempt in range(1, config.COPY_ATTEMPTS + 1):
            try:
                with winapi.open_shared_read(source) as src, open(destination, 'xb') as dst:
                    shutil.copyfileobj(src, dst, config.COPY_BUFFER)
                return
            except OSError as e:
                log.debug('Copy attempt %d of %s failed: %s', attempt, source, e)
                destination.unlink(missing_ok=True)
                if attempt == config.COPY_ATTEMPTS:
                    raise
                time.sleep(config.COPY_BACKOFF * attempt)

    # ── Decryption ─────────────────────────────────────────────

    def decode_row(self, row: tuple[bytes | None, str | None], profile: BrowserProfile) -> str | None:
        """Return the plaintext ``value`` column if set, else the decrypted ``encrypted_value``.

        The master key is only unwrapped for ``v10``/``v11`` blobs.
        """
        encrypted, plain = row
        if plain:
            return plain
        if not encrypted:
            return None
        blob = bytes(encrypted)
        key = self.master_key(profile) if blob[:3] in VERSION_TAGS else b''
        return self.decrypt(blob, key)

    def decrypt(self, blob: bytes, key: bytes) -> str:
        """Decrypt a cookie blob.

        ``v10``/``v11`` blobs are ``tag(3) | nonce(12) | ciphertext | gcm_tag(16)``;
        anything else is a legacy DPAPI wrap of the plaintext.

        Raises
        ------
        DecryptionFailed
            On a short blob, a wrong key, tampering or non-UTF-8 plaintext.
        """
        try:
            if blob[:3] in VERSION_TAGS:
                if len(blob) < 3 + NONCE_SIZE + TAG_SIZE:
                    raise DecryptionFailed('truncated cookie blob')
                nonce = blob[3:3 + NONCE_SIZE]
                plaintext = AESGCM(key).decrypt(nonce, blob[3 + NONCE_SIZE:], None)
            else:
                plaintext = self._unprotect(blob)
            return plaintext.decode('utf-8')
        except (InvalidTag, ValueError, OSError) as e:
            raise DecryptionFailed('cookie blob could not be decrypted') from e
