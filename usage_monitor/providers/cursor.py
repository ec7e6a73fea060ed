"""Cursor usage via the cursor.com session cookie."""
from __future__ import annotations

import logging
from typing import Any

import requests

from .. import config
from ..credentials import CredentialResolver, ResolvedCredential
from ..errors import CredentialNotFound, UsageMonitorError
from ..i18n import T
from ..models import Provider, ProviderCostSnapshot, ProviderIdentity, RateWindow, UsageSnapshot, parse_timestamp
from .base import ProviderFetcher, expect_dict, number, request_json

log = logging.getLogger(__name__)

PLAN_NAMES = {'enterprise': 'Enterprise', 'pro': 'Pro', 'hobby': 'Hobby'}


def format_plan(membership_type: str | None) -> str:
    if not membership_type:
        return 'Cursor'
    return PLAN_NAMES.get(membership_type.lower(), membership_type)


def plan_percent(plan: dict[str, Any]) -> float:
    """Share of the included plan already used.

    ``totalPercentUsed`` when present, otherwise ``used`` against the
    breakdown total or the plan limit (all in cents).
    """
    total_pct = number(plan.get('totalPercentUsed'))
    if total_pct is not None:
        return total_pct

    used = number(plan.get('used'))
    if used is None:
        return 0.0
    breakdown = plan.get('breakdown')
    total = number(breakdown.get('total')) if isinstance(breakdown, dict) else None
    if total and total > 0:
        return used / total * 100
    limit = number(plan.get('limit'))
    if limit and limit > 0:
        return used / limit * 100
    return 0.0


def parse_usage_summary(summary: dict[str, Any]) -> tuple[RateWindow | None, ProviderCostSnapshot | None]:
    individual = summary.get('individualUsage')
    individual = individual if isinstance(individual, dict) else {}
    team = summary.get('teamUsage')
    plan = individual.get('plan')
    if not isinstance(plan, dict) and isinstance(team, dict):
        plan = team.get('plan')
    on_demand = individual.get('onDemand')
    on_demand = on_demand if isinstance(on_demand, dict) else {}

    on_demand_used = number(on_demand.get('used')) or 0.0
    # Spending on demand means the included plan is exhausted.
    on_demand_active = bool(on_demand.get('enabled')) and on_demand_used > 0
    resets_at = parse_timestamp(summary.get('billingCycleEnd'))
    log.debug('cursor: plan=%s on_demand_used=%s', plan, on_demand_used)

    primary = None
    if isinstance(plan, dict):
        pct = 100.0 if on_demand_active else plan_percent(plan)
        primary = RateWindow(used_percent=pct, label=T['label_plan'], resets_at=resets_at)

    cost = None
    if on_demand_active:
        limit_cents = number(on_demand.get('limit')) or number(on_demand.get('hardLimit'))
        if limit_cents is None:
            limit_cents = config.CURSOR_DEFAULT_ON_DEMAND_LIMIT_CENTS
        cost = ProviderCostSnapshot(
            used=on_demand_used / 100, limit=limit_cents / 100, currency_code='USD',
            period=T['label_on_demand'], resets_at=resets_at,
        )

    return primary, cost


class CursorFetcher(ProviderFetcher):
    provider = Provider.CURSOR

    def __init__(self, resolver: CredentialResolver, session: requests.Session | None = None) -> None:
        super().__init__(session)
        self.resolver = resolver

    def session_cookie(self) -> ResolvedCredential | None:
        return self.resolver.resolve(self.provider.value, config.CURSOR_SESSION_COOKIES, config.CURSOR_COOKIE_DOMAIN)

    def is_available(self) -> bool:
        return self.session_cookie() is not None

    def _get(self, url: str, cookie: str) -> dict[str, Any]:
        headers = {'Cookie': cookie, 'User-Agent': config.BROWSER_USER_AGENT, 'Accept': 'application/json'}
        return expect_dict(request_json(self.session, 'GET', url, headers=headers, timeout=config.TIMEOUT_CURSOR))

    def _fetch(self) -> UsageSnapshot:
        credential = self.session_cookie()
        if credential is None:
            raise CredentialNotFound(T['cursor_no_session'])
        cookie = credential.cookie_header()

        summary = self._get(config.CURSOR_USAGE_URL, cookie)
        primary, cost = parse_usage_summary(summary)

        try:
            user = self._get(config.CURSOR_USER_URL, cookie)
        except UsageMonitorError as e:
            log.debug('cursor: user info unavailable: %s', e)
            user = {}

        return UsageSnapshot(
            provider=self.provider, primary=primary, cost=cost,
            identity=ProviderIdentity(email=user.get('email') or None, plan=format_plan(summary.get('membershipType'))),
        )
