"""
Claude
======

Two strategies, tried in this order:

1. OAuth token of Claude Code from ``~/.claude/.credentials.json``
   (requires the ``user:profile`` scope).
2. ``sessionKey`` cookie of claude.ai (pasted manually or read from the browser).
"""
from __future__ import annotations

import logging
from typing import Any

import requests

from .. import config
from ..credentials import GENERIC_COOKIE_NAME, CredentialResolver, ResolvedCredential
from ..errors import CredentialNotFound, ParseError, UsageMonitorError
from ..i18n import T
from ..models import (
    Provider, ProviderCostSnapshot, ProviderIdentity, RateWindow, UsageSnapshot, parse_timestamp, seconds_from_now,
)
from ..oauth import OAuthCredential, OAuthCredentialManager, to_epoch_ms
from .base import CombinedFetcher, OAuthUsageFetcher, ProviderFetcher, expect_dict, number, request_json

log = logging.getLogger(__name__)

PERIOD_5H = 5 * 60
PERIOD_7D = 7 * 24 * 60
CLOUDFLARE_COOKIES = ('cf_clearance', '__cf_bm')
BROWSER_HEADERS = {
    'Accept': 'application/json, text/plain, */*',
    'Accept-Language': 'en-US,en;q=0.9',
    'User-Agent': config.BROWSER_USER_AGENT,
    'Origin': 'https://claude.ai',
    'Referer': 'https://claude.ai/',
}


def format_plan(value: str | None) -> str | None:
    """``'claude_max'`` → ``'Claude Max'``."""
    return value.replace('_', ' ').title() if value else None


def _window(entry: Any, minutes: int, label: str) -> RateWindow | None:
    if not isinstance(entry, dict):
        return None
    pct = number(entry.get('percent_used'))
    if pct is None:
        pct = number(entry.get('utilization'))
    if pct is None:
        return None
    return RateWindow(used_percent=pct, label=label, window_minutes=minutes, resets_at=parse_timestamp(entry.get('resets_at')))


def parse_usage_windows(usage: dict[str, Any]) -> tuple[RateWindow | None, RateWindow | None, RateWindow | None]:
    """Return (session, weekly, model-specific) windows from a usage response.

    Understands the OAuth shape (``five_hour``/``seven_day`` objects) and the
    older web shape (``session_used_percent`` plus seconds remaining).
    """
    if any(key in usage for key in ('five_hour', 'seven_day')):
        tertiary = _window(usage.get('seven_day_opus'), PERIOD_7D, T['label_opus'])
        if tertiary is None:
            tertiary = _window(usage.get('seven_day_sonnet'), PERIOD_7D, T['label_sonnet'])
        return (
            _window(usage.get('five_hour'), PERIOD_5H, T['label_session']),
            _window(usage.get('seven_day'), PERIOD_7D, T['label_weekly']),
            tertiary,
        )

    session = number(usage.get('session_used_percent'))
    weekly = number(usage.get('weekly_used_percent'))
    opus = number(usage.get('opus_used_percent'))
    return (
        RateWindow(session, T['label_session'], PERIOD_5H, seconds_from_now(usage.get('session_window_remaining')))
        if session is not None else None,
        RateWindow(weekly, T['label_weekly'], PERIOD_7D, seconds_from_now(usage.get('weekly_window_remaining')))
        if weekly is not None else None,
        RateWindow(opus, T['label_opus'], PERIOD_7D) if opus is not None else None,
    )


def parse_extra_usage(usage: dict[str, Any]) -> ProviderCostSnapshot | None:
    extra = usage.get('extra_usage')
    if not isinstance(extra, dict):
        return None
    spend = number(extra.get('spend')) or 0.0
    limit = number(extra.get('limit')) or 0.0
    if spend <= 0 and limit <= 0:
        return None
    return ProviderCostSnapshot(used=spend, limit=limit, currency_code='USD', period=T['label_extra_usage'])


# ── OAuth ──────────────────────────────────────────────────────


class ClaudeCredentialManager(OAuthCredentialManager):
    """``{"claudeAiOauth": {"accessToken", "refreshToken", "expiresAt" (ms), "scopes", "subscriptionType"}}``"""

    name = 'claude'
    token_url = config.CLAUDE_TOKEN_URL
    client_id = config.CLAUDE_CLIENT_ID
    KEY = 'claudeAiOauth'

    def __init__(self, paths=config.CLAUDE_CREDENTIALS, session: requests.Session | None = None) -> None:
        super().__init__(paths, session)

    def parse(self, data: dict[str, Any]) -> OAuthCredential | None:
        oauth = data.get(self.KEY)
        if not isinstance(oauth, dict) or not oauth.get('accessToken'):
            return None
        return OAuthCredential(
            access_token=oauth['accessToken'],
            refresh_token=oauth.get('refreshToken') or None,
            expires_at=parse_timestamp(oauth.get('expiresAt')),
            scopes=tuple(oauth.get('scopes') or ()),
            subscription_type=oauth.get('subscriptionType'),
        )

    def serialize(self, data: dict[str, Any], credential: OAuthCredential) -> dict[str, Any]:
        oauth = data.get(self.KEY)
        oauth = dict(oauth) if isinstance(oauth, dict) else {}
        oauth['accessToken'] = credential.access_token
        if credential.refresh_token:
            oauth['refreshToken'] = credential.refresh_token
        if credential.expires_at is not None:
            oauth['expiresAt'] = to_epoch_ms(credential.expires_at)
        data[self.KEY] = oauth
        return data


class ClaudeOAuthFetcher(OAuthUsageFetcher):
    provider = Provider.CLAUDE
    missing_message = T['claude_no_oauth']

    def __init__(self, manager: OAuthCredentialManager | None = None, session: requests.Session | None = None) -> None:
        super().__init__(manager or ClaudeCredentialManager(), session)

    def accepts(self, credential: OAuthCredential) -> bool:
        return credential.has_scope(config.CLAUDE_PROFILE_SCOPE)

    @staticmethod
    def api_headers(token: str) -> dict[str, str]:
        """Return auth headers for the Anthropic OAuth API."""
        return {
            'Authorization': f'Bearer {token}',
            'Content-Type': 'application/json',
            'User-Agent': config.USER_AGENT,
            'anthropic-beta': config.CLAUDE_OAUTH_BETA,
        }

    def fetch_profile(self, token: str) -> dict[str, Any]:
        """Fetch account profile; failures only cost the identity section."""
        try:
            return expect_dict(request_json(
                self.session, 'GET', config.CLAUDE_API_URL_PROFILE,
                headers=self.api_headers(token), timeout=config.TIMEOUT_CLAUDE,
            ))
        except UsageMonitorError as e:
            log.debug('claude: profile unavailable: %s', e)
            return {}

    def fetch_with(self, credential: OAuthCredential) -> UsageSnapshot:
        if not self.accepts(credential):
            raise CredentialNotFound(T['claude_missing_scope'])

        usage = expect_dict(request_json(
            self.session, 'GET', config.CLAUDE_API_URL_USAGE,
            headers=self.api_headers(credential.access_token), timeout=config.TIMEOUT_CLAUDE,
        ))
        primary, secondary, tertiary = parse_usage_windows(usage)

        profile = self.fetch_profile(credential.access_token)
        account = profile.get('account') or {}
        org = profile.get('organization') or {}
        identity = ProviderIdentity(
            email=account.get('email') or None,
            plan=format_plan(credential.subscription_type or org.get('organization_type')),
            organization=org.get('name') or None,
        )

        return UsageSnapshot(
            provider=self.provider, primary=primary, secondary=secondary, tertiary=tertiary,
            cost=parse_extra_usage(usage), identity=identity,
        )


# ── Web (cookies) ──────────────────────────────────────────────


class ClaudeWebFetcher(ProviderFetcher):
    provider = Provider.CLAUDE

    def __init__(self, resolver: CredentialResolver, session: requests.Session | None = None) -> None:
        super().__init__(session)
        self.resolver = resolver

    def session_key(self) -> ResolvedCredential | None:
        return self.resolver.resolve(
            self.provider.value, [config.CLAUDE_SESSION_COOKIE], config.CLAUDE_COOKIE_DOMAIN,
        )

    def is_available(self) -> bool:
        return self.session_key() is not None

    def cookie_header(self, credential: ResolvedCredential) -> str:
        """``sessionKey`` plus any Cloudflare cookies the browser holds."""
        if credential.name == GENERIC_COOKIE_NAME:
            return credential.value
        cookies = [credential.cookie_header()]
        for name in CLOUDFLARE_COOKIES:
            value = self.resolver.browser_cookie(config.CLAUDE_COOKIE_DOMAIN, name)
            if value:
                cookies.append(f'{name}={value}')
        return '; '.join(cookies)

    def _get(self, path: str, headers: dict[str, str]) -> Any:
        return request_json(
            self.session, 'GET', f'{config.CLAUDE_WEB_API}{path}', headers=headers, timeout=config.TIMEOUT_CLAUDE,
        )

    def _fetch(self) -> UsageSnapshot:
        credential = self.session_key()
        if credential is None:
            raise CredentialNotFound(T['claude_no_session'])
        headers = {**BROWSER_HEADERS, 'Cookie': self.cookie_header(credential)}

        orgs = self._get('/organizations', headers)
        org = orgs[0] if isinstance(orgs, list) and orgs and isinstance(orgs[0], dict) else {}
        org_id = org.get('uuid')
        if not org_id:
            raise ParseError(T['claude_no_org'])

        usage = expect_dict(self._get(f'/organizations/{org_id}/usage', headers))
        primary, secondary, tertiary = parse_usage_windows(usage)

        try:
            account = expect_dict(self._get('/account', headers))
        except UsageMonitorError:
            account = {}

        return UsageSnapshot(
            provider=self.provider, primary=primary, secondary=secondary, tertiary=tertiary,
            cost=parse_extra_usage(usage),
            identity=ProviderIdentity(email=account.get('email') or None, organization=org.get('name') or None),
        )


class ClaudeFetcher(CombinedFetcher):
    """OAuth first, browser session second."""

    def __init__(self, resolver: CredentialResolver, manager: OAuthCredentialManager | None = None) -> None:
        super().__init__(
            Provider.CLAUDE, [ClaudeOAuthFetcher(manager), ClaudeWebFetcher(resolver)], T['claude_no_auth'],
        )
