"""
Unit Tests for the Chromium cookie reader

Tests for:
- v10/v11 AES-GCM decryption
- Plaintext and legacy DPAPI cookies
- Master key handling
- Reading a locked database (immutable mode, copy with retries)
"""
from __future__ import annotations

import sqlite3
from unittest import mock

import pytest

from conftest import encrypt_v10, fake_protect, fake_unprotect, write_cookie_db, write_local_state
from usage_monitor import browser_cookies, config
from usage_monitor.browser_cookies import BrowserCredentialVault, BrowserProfile
from usage_monitor.errors import DecryptionFailed


class TestDecryption:
    """Cookie values as Chromium stores them."""

    def test_v10_round_trip(self, chromium, aes_key):
        vault = chromium([
            {'host_key': '.example.com', 'name': 'session', 'encrypted_value': encrypt_v10('abc123', aes_key)},
        ])

        assert vault.get_cookie('example.com', 'session') == 'abc123'

    def test_v11_prefix_is_accepted(self, chromium, aes_key):
        vault = chromium([
            {'host_key': 'example.com', 'name': 'session', 'encrypted_value': encrypt_v10('xyz', aes_key, b'v11')},
        ])

        assert vault.get_cookie('example.com', 'session') == 'xyz'

    def test_plaintext_value_needs_no_decryption(self, chromium):
        vault = chromium([{'host_key': '.example.com', 'name': 'session', 'value': 'plain'}])
        vault._unprotect = mock.Mock(side_effect=AssertionError('must not decrypt'))

        assert vault.get_cookie('example.com', 'session') == 'plain'
        vault._unprotect.assert_not_called()

    def test_legacy_dpapi_blob(self, chromium):
        vault = chromium([
            {'host_key': '.example.com', 'name': 'session', 'encrypted_value': fake_protect(b'legacy')},
        ])

        assert vault.get_cookie('example.com', 'session') == 'legacy'

    def test_tampered_blob_is_absent(self, chromium, aes_key):
        blob = bytearray(encrypt_v10('abc123', aes_key))
        blob[-1] ^= 0x01
        vault = chromium([{'host_key': '.example.com', 'name': 'session', 'encrypted_value': bytes(blob)}])

        assert vault.get_cookie('example.com', 'session') is None

    def test_truncated_blob_raises(self, aes_key):
        vault = BrowserCredentialVault(profiles=[], unprotect=fake_unprotect)

        with pytest.raises(DecryptionFailed):
            vault.decrypt(b'v10' + b'\x00' * 10, aes_key)

    def test_newest_cookie_wins(self, chromium, aes_key):
        vault = chromium([
            {'host_key': '.example.com', 'name': 'session', 'encrypted_value': encrypt_v10('old', aes_key),
             'last_access_utc': 100},
            {'host_key': '.example.com', 'name': 'session', 'encrypted_value': encrypt_v10('new', aes_key),
             'last_access_utc': 200},
        ])

        assert vault.get_cookie('example.com', 'session') == 'new'

    def test_unknown_cookie_is_absent(self, chromium):
        vault = chromium([{'host_key': '.example.com', 'name': 'session', 'value': 'plain'}])

        assert vault.get_cookie('example.com', 'other') is None
        assert vault.get_cookie('other.org', 'session') is None


# ----------------------------------------------------------------------
# Master key and profile discovery
# ----------------------------------------------------------------------

class TestMasterKey:
    """Local State handling."""

    def test_key_without_dpapi_tag_is_rejected(self, tmp_path, aes_key):
        user_data = tmp_path / 'User Data'
        write_local_state(user_data, aes_key, tag=b'XXXXX')
        vault = BrowserCredentialVault(profiles=[], unprotect=fake_unprotect)

        with pytest.raises(DecryptionFailed):
            vault.master_key(BrowserProfile('Chrome', user_data))

    def test_missing_local_state_makes_encrypted_cookie_absent(self, chromium, aes_key, tmp_path):
        vault = chromium([
            {'host_key': '.example.com', 'name': 'session', 'encrypted_value': encrypt_v10('abc123', aes_key)},
        ])
        (tmp_path / 'Chrome' / 'User Data' / config.LOCAL_STATE_FILE).unlink()

        assert vault.get_cookie('example.com', 'session') is None

    def test_wrong_key_is_absent(self, tmp_path, aes_key):
        user_data = tmp_path / 'User Data'
        write_local_state(user_data, b'\x01' * 32)
        write_cookie_db(user_data / config.COOKIE_DB_CANDIDATES[0], [
            {'host_key': '.example.com', 'name': 'session', 'encrypted_value': encrypt_v10('abc123', aes_key)},
        ])
        vault = BrowserCredentialVault(profiles=[BrowserProfile('Chrome', user_data)], unprotect=fake_unprotect)

        assert vault.get_cookie('example.com', 'session') is None

    def test_legacy_database_location(self, chromium, aes_key):
        vault = chromium(
            [{'host_key': '.example.com', 'name': 'session', 'encrypted_value': encrypt_v10('abc123', aes_key)}],
            network_dir=False,
        )

        assert vault.get_cookie('example.com', 'session') == 'abc123'

    def test_first_installed_browser_wins(self, tmp_path, aes_key):
        edge = tmp_path / 'Edge'
        write_local_state(edge, aes_key)
        write_cookie_db(edge / config.COOKIE_DB_CANDIDATES[0], [
            {'host_key': '.example.com', 'name': 'session', 'encrypted_value': encrypt_v10('from-edge', aes_key)},
        ])
        vault = BrowserCredentialVault(
            profiles=[BrowserProfile('Chrome', tmp_path / 'Chrome'), BrowserProfile('Edge', edge)],
            unprotect=fake_unprotect,
        )

        assert vault.locate() == (vault.profiles[1], edge / config.COOKIE_DB_CANDIDATES[0])
        assert vault.get_cookie('example.com', 'session') == 'from-edge'

    def test_no_browser_installed(self, tmp_path):
        vault = BrowserCredentialVault(profiles=[BrowserProfile('Chrome', tmp_path / 'none')], unprotect=fake_unprotect)

        assert vault.get_cookie('example.com', 'session') is None


# ----------------------------------------------------------------------
# Locked database
# ----------------------------------------------------------------------

class TestLockedDatabase:
    """The browser holds the database open while it runs."""

    @pytest.fixture
    def locked(self, chromium, aes_key, monkeypatch):
        vault = chromium([
            {'host_key': '.example.com', 'name': 'session', 'encrypted_value': encrypt_v10('abc123', aes_key)},
        ])
        monkeypatch.setattr(
            vault, '_query_immutable', mock.Mock(side_effect=sqlite3.OperationalError('database is locked')),
        )
        sleeps: list[float] = []
        monkeypatch.setattr(browser_cookies.time, 'sleep', sleeps.append)
        return vault, sleeps

    @staticmethod
    def flaky_open(failures: int):
        calls = {'count': 0}

        def open_shared_read(path):
            calls['count'] += 1
            if calls['count'] <= failures:
                raise PermissionError('file in use')
            return open(path, 'rb')

        return open_shared_read, calls

    def test_copy_succeeds_on_third_attempt(self, locked, monkeypatch):
        vault, sleeps = locked
        opener, calls = self.flaky_open(failures=2)
        monkeypatch.setattr(browser_cookies.winapi, 'open_shared_read', opener)

        assert vault.get_cookie('example.com', 'session') == 'abc123'
        assert calls['count'] == 3
        assert sleeps == pytest.approx([0.1, 0.2])

    def test_temp_copy_is_deleted(self, locked, monkeypatch):
        vault, _ = locked
        opener, _ = self.flaky_open(failures=1)
        monkeypatch.setattr(browser_cookies.winapi, 'open_shared_read', opener)

        assert vault.get_cookie('example.com', 'session') == 'abc123'
        assert list(vault.temp_dir.iterdir()) == []

    def test_gives_up_after_three_attempts(self, locked, monkeypatch):
        vault, sleeps = locked
        opener, calls = self.flaky_open(failures=10)
        monkeypatch.setattr(browser_cookies.winapi, 'open_shared_read', opener)

        assert vault.get_cookie('example.com', 'session') is None
        assert calls['count'] == config.COPY_ATTEMPTS
        assert sleeps == pytest.approx([0.1, 0.2])
        assert list(vault.temp_dir.iterdir()) == []

    def test_immutable_answer_is_final(self, chromium, monkeypatch):
        vault = chromium([{'host_key': '.example.com', 'name': 'session', 'value': 'plain'}])
        opener = mock.Mock(side_effect=AssertionError('must not copy'))
        monkeypatch.setattr(browser_cookies.winapi, 'open_shared_read', opener)

        assert vault.get_cookie('example.com', 'missing') is None
        opener.assert_not_called()

    def test_unexpected_error_is_swallowed(self, chromium, monkeypatch):
        vault = chromium([{'host_key': '.example.com', 'name': 'session', 'value': 'plain'}])
        monkeypatch.setattr(vault, '_read_row', mock.Mock(side_effect=RuntimeError('boom')))

        assert vault.get_cookie('example.com', 'session') is None
