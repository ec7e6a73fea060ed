"""Shared fixtures: fake HTTP session and Chromium profile builders."""
from __future__ import annotations

import base64
import json
import os
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Callable

import pytest
import requests
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from usage_monitor import config
from usage_monitor.browser_cookies import BrowserCredentialVault, BrowserProfile

FAKE_DPAPI_TAG = b'dpapi:'


# ----------------------------------------------------------------------
# HTTP
# ----------------------------------------------------------------------

def make_response(status: int = 200, payload: Any = None, url: str = 'https://example.test/', body: bytes | None = None) -> requests.Response:
    """Build a real ``requests.Response`` with a JSON (or raw) body."""
    resp = requests.Response()
    resp.status_code = status
    resp.url = url
    resp.encoding = 'utf-8'
    if body is not None:
        resp._content = body
    elif payload is not None:
        resp._content = json.dumps(payload).encode('utf-8')
        resp.headers['Content-Type'] = 'application/json'
    else:
        resp._content = b''
    return resp


class FakeSession:
    """Stand-in for ``requests.Session`` that serves queued responses per URL.

    A queue entry is a ``Response``, an exception to raise, or a callable
    ``(method, url, **kwargs) -> Response``.  The last entry of a queue is
    repeated; unknown URLs answer 404.
    """

    def __init__(self) -> None:
        self.routes: dict[str, list[Any]] = {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def add(self, url: str, *responses: Any) -> FakeSession:
        self.routes.setdefault(url, []).extend(responses)
        return self

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append((method, url, kwargs))
        queue = self.routes.get(url)
        if not queue:
            return make_response(404, url=url)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(method, url, **kwargs)
        return item

    def calls_to(self, url: str) -> list[tuple[str, str, dict[str, Any]]]:
        return [call for call in self.calls if call[1] == url]


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


# ----------------------------------------------------------------------
# Chromium profiles
# ----------------------------------------------------------------------

def fake_protect(data: bytes) -> bytes:
    return FAKE_DPAPI_TAG + data


def fake_unprotect(data: bytes) -> bytes:
    """DPAPI stand-in: only accepts blobs produced by :func:`fake_protect`."""
    if not data.startswith(FAKE_DPAPI_TAG):
        raise OSError('not a protected blob')
    return data[len(FAKE_DPAPI_TAG):]


def encrypt_v10(plaintext: str, key: bytes, version: bytes = b'v10') -> bytes:
    nonce = os.urandom(12)
    return version + nonce + AESGCM(key).encrypt(nonce, plaintext.encode('utf-8'), None)


def write_cookie_db(path: Path, rows: list[dict[str, Any]]) -> Path:
    """Create a minimal Chromium ``cookies`` table with *rows*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with closing(sqlite3.connect(path)) as conn:
        conn.execute(
            'CREATE TABLE cookies (host_key TEXT, name TEXT, value TEXT, '
            'encrypted_value BLOB, last_access_utc INTEGER)'
        )
        conn.executemany(
            'INSERT INTO cookies VALUES (:host_key, :name, :value, :encrypted_value, :last_access_utc)',
            [
                {'value': '', 'encrypted_value': b'', 'last_access_utc': 0, **row}
                for row in rows
            ],
        )
        conn.commit()
    return path


def write_local_state(user_data_dir: Path, key: bytes, tag: bytes = config.DPAPI_KEY_PREFIX) -> Path:
    user_data_dir.mkdir(parents=True, exist_ok=True)
    encrypted_key = base64.b64encode(tag + fake_protect(key)).decode('ascii')
    path = user_data_dir / config.LOCAL_STATE_FILE
    path.write_text(json.dumps({'os_crypt': {'encrypted_key': encrypted_key}}), encoding='utf-8')
    return path


@pytest.fixture
def aes_key() -> bytes:
    return AESGCM.generate_key(bit_length=256)


@pytest.fixture
def chromium(tmp_path: Path, aes_key: bytes) -> Callable[..., BrowserCredentialVault]:
    """Factory building a Chrome profile with the given cookie rows and a vault reading it."""
    def build(rows: list[dict[str, Any]], network_dir: bool = True) -> BrowserCredentialVault:
        user_data = tmp_path / 'Chrome' / 'User Data'
        write_local_state(user_data, aes_key)
        relative = config.COOKIE_DB_CANDIDATES[0] if network_dir else config.COOKIE_DB_CANDIDATES[1]
        write_cookie_db(user_data / relative, rows)
        temp_dir = tmp_path / 'tmp'
        temp_dir.mkdir(exist_ok=True)
        return BrowserCredentialVault(
            profiles=[BrowserProfile('Chrome', user_data)], unprotect=fake_unprotect, temp_dir=temp_dir,
        )

    return build
