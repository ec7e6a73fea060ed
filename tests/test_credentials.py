"""
Unit Tests for credential resolution

Tests for:
- Manual cookie string parsing
- Source chain precedence
- Environment and config file sources
"""
from __future__ import annotations

import json
from unittest import mock

from conftest import encrypt_v10
from usage_monitor.credentials import (
    GENERIC_COOKIE_NAME, CredentialResolver, CredentialSource, ManualCredentialStore, ResolvedCredential,
    config_file_source, environment_source, extract_cookie_value, manual_source, resolve_first,
)


class TestExtractCookieValue:
    """``name=value; name=value`` parsing."""

    def test_finds_named_cookie(self):
        assert extract_cookie_value('a=1; sessionKey=sk-ant-xyz; b=2', 'sessionKey') == 'sk-ant-xyz'

    def test_name_match_is_case_insensitive(self):
        assert extract_cookie_value('SESSIONKEY=abc', 'sessionKey') == 'abc'

    def test_value_may_contain_equals(self):
        assert extract_cookie_value('token=a=b=c', 'token') == 'a=b=c'

    def test_missing_or_empty(self):
        assert extract_cookie_value('a=1', 'b') is None
        assert extract_cookie_value('', 'a') is None
        assert extract_cookie_value('novalue; =x', 'novalue') is None


class TestManualStore:
    def test_empty_values_are_dropped(self):
        store = ManualCredentialStore({'claude': 'sessionKey=a', 'cursor': ''})

        assert store.get('claude') == 'sessionKey=a'
        assert store.get('cursor') is None
        assert 'cursor' not in store._credentials

    def test_set_credentials_replaces_everything(self):
        store = ManualCredentialStore({'claude': 'x'})
        store.set_credentials({'zai': 'token'})

        assert store.get('claude') is None
        assert store.get('zai') == 'token'


# ----------------------------------------------------------------------
# Sources
# ----------------------------------------------------------------------

class TestSources:
    def test_manual_known_name(self):
        store = ManualCredentialStore({'claude': 'foo=1; sessionKey=abc'})

        assert manual_source(store, 'claude', ['sessionKey'])() == ResolvedCredential(
            CredentialSource.MANUAL, 'sessionKey', 'abc',
        )

    def test_manual_unknown_name_uses_whole_string(self):
        store = ManualCredentialStore({'claude': ' foo=1; bar=2 '})
        credential = manual_source(store, 'claude', ['sessionKey'])()

        assert credential.name == GENERIC_COOKIE_NAME
        assert credential.value == 'foo=1; bar=2'
        assert credential.cookie_header() == 'foo=1; bar=2'

    def test_environment(self, monkeypatch):
        monkeypatch.delenv('FIRST_TOKEN', raising=False)
        monkeypatch.setenv('SECOND_TOKEN', '  tok  ')

        credential = environment_source('FIRST_TOKEN', 'SECOND_TOKEN')()

        assert credential == ResolvedCredential(CredentialSource.ENVIRONMENT, 'SECOND_TOKEN', 'tok')

    def test_config_file(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'api_token': 'from-file'}), encoding='utf-8')

        assert config_file_source(path, 'api_token')().value == 'from-file'

    def test_config_file_unreadable_is_absent(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text('{not json', encoding='utf-8')

        assert config_file_source(path, 'api_token')() is None
        assert config_file_source(tmp_path / 'missing.json', 'api_token')() is None

    def test_resolve_first_short_circuits(self):
        later = mock.Mock()
        found = ResolvedCredential(CredentialSource.MANUAL, 'a', 'b')

        assert resolve_first([lambda: None, lambda: found, later]) is found
        later.assert_not_called()


# ----------------------------------------------------------------------
# Resolver
# ----------------------------------------------------------------------

class TestCredentialResolver:
    def test_manual_beats_browser(self, chromium, aes_key):
        vault = chromium([
            {'host_key': '.example.com', 'name': 'session', 'encrypted_value': encrypt_v10('browser-value', aes_key)},
        ])
        resolver = CredentialResolver(ManualCredentialStore({'example': 'session=manual-value'}), vault)

        credential = resolver.resolve('example', ['session'], 'example.com')

        assert credential == ResolvedCredential(CredentialSource.MANUAL, 'session', 'manual-value')

    def test_browser_used_without_manual(self, chromium, aes_key):
        vault = chromium([
            {'host_key': '.example.com', 'name': 'session', 'encrypted_value': encrypt_v10('abc123', aes_key)},
        ])
        resolver = CredentialResolver(ManualCredentialStore(), vault)

        credential = resolver.resolve('example', ['other', 'session'], 'example.com')

        assert credential == ResolvedCredential(CredentialSource.BROWSER_COOKIE, 'session', 'abc123')

    def test_absence_is_not_an_error(self):
        vault = mock.Mock()
        vault.get_cookie.return_value = None
        resolver = CredentialResolver(ManualCredentialStore(), vault)

        assert resolver.resolve('example', ['a', 'b'], 'example.com') is None
        assert vault.get_cookie.call_count == 2
