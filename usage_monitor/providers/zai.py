"""Zai (z.ai) usage via API token."""
from __future__ import annotations

from typing import Any

import requests

from .. import config
from ..credentials import (
    CredentialResolver, ResolvedCredential, config_file_source, environment_source, manual_source, resolve_first,
)
from ..errors import CredentialNotFound
from ..i18n import T
from ..models import Provider, RateWindow, UsageSnapshot
from .base import ProviderFetcher, expect_dict, number, request_json


def _ratio_window(used: Any, limit: Any, label: str) -> RateWindow | None:
    used, limit = number(used), number(limit)
    if used is None or limit is None:
        return None
    return RateWindow(used_percent=used / limit * 100 if limit > 0 else 0.0, label=label)


def parse_usage(payload: dict[str, Any]) -> tuple[RateWindow, RateWindow | None]:
    tokens = _ratio_window(payload.get('tokens_used'), payload.get('tokens_limit'), T['label_tokens'])
    return (
        tokens or RateWindow(used_percent=0.0, label=T['label_tokens']),
        _ratio_window(payload.get('mcp_used'), payload.get('mcp_limit'), T['label_mcp']),
    )


class ZaiFetcher(ProviderFetcher):
    provider = Provider.ZAI

    def __init__(self, resolver: CredentialResolver, session: requests.Session | None = None) -> None:
        super().__init__(session)
        self.resolver = resolver

    def api_token(self) -> ResolvedCredential | None:
        """Pasted token, then ``$ZAI_API_TOKEN``, then ``~/.zai/config.json``."""
        return resolve_first([
            manual_source(self.resolver.store, self.provider.value),
            environment_source(config.ZAI_TOKEN_ENV),
            config_file_source(config.ZAI_CONFIG, config.ZAI_CONFIG_KEY),
        ])

    def is_available(self) -> bool:
        return self.api_token() is not None

    def _fetch(self) -> UsageSnapshot:
        token = self.api_token()
        if token is None:
            raise CredentialNotFound(T['zai_no_token'])

        payload = expect_dict(request_json(
            self.session, 'GET', config.ZAI_USAGE_URL,
            headers={'Authorization': f'Bearer {token.value}', 'User-Agent': config.USER_AGENT},
            timeout=config.TIMEOUT_ZAI,
        ))
        primary, secondary = parse_usage(payload)
        return UsageSnapshot(provider=self.provider, primary=primary, secondary=secondary)
