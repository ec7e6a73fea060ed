"""
Gemini
======

Quota of the Gemini CLI's Google sign-in (``~/.gemini/oauth_creds.json``).
Only the ``oauth-personal`` login is supported; API-key and Vertex AI setups
have no quota endpoint.
"""
from __future__ import annotations

import logging
import os
from typing import Any

import requests

from .. import config
from ..errors import CredentialNotFound, ParseError
from ..i18n import T
from ..models import Provider, ProviderIdentity, RateWindow, UsageSnapshot, parse_timestamp
from ..oauth import OAuthCredential, OAuthCredentialManager, to_epoch_ms
from .base import OAuthUsageFetcher, expect_dict, number, request_json

log = logging.getLogger(__name__)


class GeminiCredentialManager(OAuthCredentialManager):
    """``{"access_token", "refresh_token", "expiry_date" (ms), "auth_type"}``

    The Google client id and secret of the CLI are not shipped; they are read
    from the environment and refreshing is skipped when they are unset.
    """

    name = 'gemini'
    token_url = config.GEMINI_TOKEN_URL

    def __init__(self, paths=config.GEMINI_CREDENTIALS, session: requests.Session | None = None) -> None:
        super().__init__(paths, session)

    @property
    def client_id(self) -> str:
        return os.environ.get(config.GEMINI_CLIENT_ID_ENV, '')

    @staticmethod
    def auth_type(data: dict[str, Any]) -> str:
        return data.get('auth_type') or config.GEMINI_AUTH_TYPE

    def parse(self, data: dict[str, Any]) -> OAuthCredential | None:
        if not data.get('access_token'):
            return None
        return OAuthCredential(
            access_token=data['access_token'],
            refresh_token=data.get('refresh_token') or None,
            expires_at=parse_timestamp(data.get('expiry_date')),
        )

    def refresh_params(self, credential: OAuthCredential) -> dict[str, str] | None:
        secret = os.environ.get(config.GEMINI_CLIENT_SECRET_ENV, '')
        if not self.client_id or not secret:
            log.info('gemini: %s/%s not set, cannot refresh', config.GEMINI_CLIENT_ID_ENV, config.GEMINI_CLIENT_SECRET_ENV)
            return None
        params = super().refresh_params(credential)
        params['client_secret'] = secret
        return params

    def serialize(self, data: dict[str, Any], credential: OAuthCredential) -> dict[str, Any]:
        data['access_token'] = credential.access_token
        if credential.refresh_token:
            data['refresh_token'] = credential.refresh_token
        if credential.expires_at is not None:
            data['expiry_date'] = to_epoch_ms(credential.expires_at)
        return data


def _bucket_window(bucket: dict[str, Any] | None, label: str) -> RateWindow | None:
    if bucket is None:
        return None
    fraction = number(bucket.get('remainingFraction'))
    return RateWindow(
        used_percent=(1 - fraction) * 100 if fraction is not None else 0.0,
        label=label,
        resets_at=parse_timestamp(bucket.get('resetTime')),
    )


def parse_quota(payload: dict[str, Any]) -> tuple[RateWindow | None, RateWindow | None]:
    """Return (flash, pro) windows; flash falls back to the first bucket."""
    buckets = [b for b in payload.get('buckets') or () if isinstance(b, dict)]
    if not buckets:
        raise ParseError(T['gemini_no_quota'])

    def find(fragment: str) -> dict[str, Any] | None:
        return next((b for b in buckets if fragment in (b.get('modelId') or '')), None)

    flash = find('flash') or buckets[0]
    return _bucket_window(flash, T['label_flash']), _bucket_window(find('pro'), T['label_pro'])


class GeminiFetcher(OAuthUsageFetcher):
    provider = Provider.GEMINI
    missing_message = T['gemini_no_oauth']

    def __init__(self, manager: OAuthCredentialManager | None = None, session: requests.Session | None = None) -> None:
        super().__init__(manager or GeminiCredentialManager(), session)

    def _auth_type(self) -> str:
        data = self.manager.read_file() or {}
        return GeminiCredentialManager.auth_type(data)

    def is_available(self) -> bool:
        return super().is_available() and self._auth_type() == config.GEMINI_AUTH_TYPE

    def _fetch(self) -> UsageSnapshot:
        if self.manager.load() is not None:
            auth_type = self._auth_type()
            if auth_type != config.GEMINI_AUTH_TYPE:
                raise CredentialNotFound(T['gemini_auth_type'].format(auth_type=auth_type))
        return super()._fetch()

    def fetch_with(self, credential: OAuthCredential) -> UsageSnapshot:
        headers = {'Authorization': f'Bearer {credential.access_token}', 'User-Agent': config.USER_AGENT}
        payload = expect_dict(request_json(
            self.session, 'POST', config.GEMINI_QUOTA_URL, json={}, headers=headers, timeout=config.TIMEOUT_GEMINI,
        ))
        primary, secondary = parse_quota(payload)
        return UsageSnapshot(
            provider=self.provider, primary=primary, secondary=secondary,
            identity=ProviderIdentity(plan='Gemini'),
        )
