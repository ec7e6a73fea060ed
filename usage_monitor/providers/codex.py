"""
Codex
=====

OAuth login of the Codex CLI (``~/.codex/auth.json``) first, the ChatGPT web
session cookie second.  Both hit the same usage endpoint.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import requests

from .. import config
from ..credentials import GENERIC_COOKIE_NAME, CredentialResolver, ResolvedCredential
from ..errors import CredentialNotFound
from ..i18n import T
from ..models import (
    Provider, ProviderCostSnapshot, ProviderIdentity, RateWindow, UsageSnapshot, parse_timestamp, seconds_from_now, utcnow,
)
from ..oauth import OAuthCredential, OAuthCredentialManager
from .base import CombinedFetcher, OAuthUsageFetcher, ProviderFetcher, expect_dict, number, request_json

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
TOKEN_MAX_AGE = timedelta(days=config.CODEX_TOKEN_MAX_AGE_DAYS)


def _window(entry: Any) -> RateWindow | None:
    if not isinstance(entry, dict):
        return None

    pct = number(entry.get('used_percent'))
    if pct is None:
        used, limit = number(entry.get('used')), number(entry.get('limit'))
        if used is None or not limit:
            return None
        pct = used / limit * 100

    seconds = number(entry.get('limit_window_seconds'))
    minutes = number(entry.get('window_minutes'))
    if seconds:
        minutes = seconds // 60

    return RateWindow(
        used_percent=pct,
        window_minutes=int(minutes) if minutes else None,
        resets_at=seconds_from_now(entry.get('reset_after_seconds')) or parse_timestamp(entry.get('resets_at')),
    )


def _credits(payload: dict[str, Any]) -> ProviderCostSnapshot | None:
    credits = payload.get('credits')
    if not isinstance(credits, dict) or not credits.get('has_credits'):
        return None
    balance = number(credits.get('balance'))
    if balance is None:
        return None
    period = T['label_unlimited'] if credits.get('unlimited') else T['label_credits']
    return ProviderCostSnapshot(used=0, limit=balance, currency_code='Credits', period=period)


def parse_usage(payload: dict[str, Any]) -> dict[str, Any]:
    """Map a ``wham/usage`` response to snapshot fields.

    The current shape is ``rate_limit.{primary,secondary}_window``; older
    responses used a ``rate_limits`` map, a ``usage`` object, or top-level
    ``used``/``limit``.
    """
    primary = secondary = None

    rate_limit = payload.get('rate_limit')
    if isinstance(rate_limit, dict):
        primary = _window(rate_limit.get('primary_window'))
        secondary = _window(rate_limit.get('secondary_window'))

    rate_limits = payload.get('rate_limits')
    if primary is None and isinstance(rate_limits, dict):
        windows = [w for w in map(_window, rate_limits.values()) if w is not None]
        primary = windows[0] if windows else None
        secondary = windows[1] if len(windows) > 1 else None

    if primary is None:
        primary = _window(payload.get('usage')) or _window(payload)

    plan = payload.get('plan_type')
    return {
        'primary': primary,
        'secondary': secondary,
        'cost': _credits(payload),
        'identity': ProviderIdentity(plan=plan.title() if isinstance(plan, str) and plan else None),
    }


# ── OAuth ──────────────────────────────────────────────────────


class CodexCredentialManager(OAuthCredentialManager):
    """Codex CLI ``auth.json``.

    Either a legacy ``OPENAI_API_KEY`` or ``tokens.{access_token, refresh_token,
    account_id}`` with a ``last_refresh`` timestamp.  Tokens count as expired
    eight days after the last refresh.
    """

    name = 'codex'
    token_url = config.CODEX_TOKEN_URL
    client_id = config.CODEX_CLIENT_ID

    def __init__(self, paths=config.CODEX_CREDENTIALS, session: requests.Session | None = None) -> None:
        super().__init__(paths, session)

    def parse(self, data: dict[str, Any]) -> OAuthCredential | None:
        api_key = data.get('OPENAI_API_KEY')
        if isinstance(api_key, str) and api_key.strip():
            return OAuthCredential(access_token=api_key.strip(), is_api_key=True)

        tokens = data.get('tokens')
        if not isinstance(tokens, dict) or not tokens.get('access_token'):
            return None

        refresh_token = tokens.get('refresh_token') or None
        last_refresh = parse_timestamp(data.get('last_refresh'))
        if last_refresh is not None:
            expires_at = last_refresh + TOKEN_MAX_AGE
        else:
            expires_at = EPOCH if refresh_token else None

        return OAuthCredential(
            access_token=tokens['access_token'],
            refresh_token=refresh_token,
            expires_at=expires_at,
            account_id=tokens.get('account_id') or None,
        )

    def refresh_params(self, credential: OAuthCredential) -> dict[str, str] | None:
        params = super().refresh_params(credential)
        params['scope'] = config.CODEX_REFRESH_SCOPE
        return params

    def expiry_after_refresh(self, payload: dict[str, Any], credential: OAuthCredential) -> datetime | None:
        return utcnow() + TOKEN_MAX_AGE

    def serialize(self, data: dict[str, Any], credential: OAuthCredential) -> dict[str, Any]:
        tokens = data.get('tokens')
        tokens = dict(tokens) if isinstance(tokens, dict) else {}
        tokens['access_token'] = credential.access_token
        if credential.refresh_token:
            tokens['refresh_token'] = credential.refresh_token
        if credential.account_id:
            tokens['account_id'] = credential.account_id
        data['tokens'] = tokens
        data['last_refresh'] = utcnow().isoformat().replace('+00:00', 'Z')
        return data


class CodexOAuthFetcher(OAuthUsageFetcher):
    provider = Provider.CODEX
    missing_message = T['codex_no_oauth']

    def __init__(self, manager: OAuthCredentialManager | None = None, session: requests.Session | None = None) -> None:
        super().__init__(manager or CodexCredentialManager(), session)

    def fetch_with(self, credential: OAuthCredential) -> UsageSnapshot:
        headers = {'Authorization': f'Bearer {credential.access_token}', 'User-Agent': config.USER_AGENT}
        if credential.account_id:
            headers['ChatGPT-Account-Id'] = credential.account_id

        payload = expect_dict(request_json(
            self.session, 'GET', config.CODEX_USAGE_URL, headers=headers, timeout=config.TIMEOUT_CODEX,
        ))
        return UsageSnapshot(provider=self.provider, **parse_usage(payload))


# ── Web (cookies) ──────────────────────────────────────────────


class CodexWebFetcher(ProviderFetcher):
    provider = Provider.CODEX

    def __init__(self, resolver: CredentialResolver, session: requests.Session | None = None) -> None:
        super().__init__(session)
        self.resolver = resolver

    def session_cookie(self) -> ResolvedCredential | None:
        return self.resolver.resolve(self.provider.value, [config.CODEX_SESSION_COOKIE], config.CODEX_COOKIE_DOMAIN)

    def is_available(self) -> bool:
        return self.session_cookie() is not None

    def cookie_header(self, credential: ResolvedCredential) -> str:
        if credential.name == GENERIC_COOKIE_NAME:
            return credential.value
        cookies = [credential.cookie_header()]
        clearance = self.resolver.browser_cookie(config.CODEX_COOKIE_DOMAIN, 'cf_clearance')
        if clearance:
            cookies.append(f'cf_clearance={clearance}')
        return '; '.join(cookies)

    def _fetch(self) -> UsageSnapshot:
        credential = self.session_cookie()
        if credential is None:
            raise CredentialNotFound(T['codex_no_session'])

        headers = {
            'Cookie': self.cookie_header(credential),
            'User-Agent': config.BROWSER_USER_AGENT,
            'Accept': 'application/json',
        }
        payload = expect_dict(request_json(
            self.session, 'GET', config.CODEX_USAGE_URL, headers=headers, timeout=config.TIMEOUT_CODEX,
        ))
        return UsageSnapshot(provider=self.provider, **parse_usage(payload))


class CodexFetcher(CombinedFetcher):
    """OAuth first, browser session second."""

    def __init__(self, resolver: CredentialResolver, manager: OAuthCredentialManager | None = None) -> None:
        super().__init__(
            Provider.CODEX, [CodexOAuthFetcher(manager), CodexWebFetcher(resolver)], T['codex_no_auth'],
        )
