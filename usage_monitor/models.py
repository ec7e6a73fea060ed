"""Usage data model shared by all providers."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any


class Provider(str, enum.Enum):
    """Supported usage providers."""

    CLAUDE = 'claude'
    CODEX = 'codex'
    CURSOR = 'cursor'
    GEMINI = 'gemini'
    ZAI = 'zai'

    @property
    def info(self) -> ProviderInfo:
        return PROVIDER_INFO[self]


@dataclass(frozen=True)
class ProviderInfo:
    name: str
    color: str
    auth_method: str


PROVIDER_INFO: dict[Provider, ProviderInfo] = {
    Provider.CLAUDE: ProviderInfo('Claude', '#D97706', 'OAuth or browser cookies'),
    Provider.CODEX: ProviderInfo('Codex', '#10A37F', 'OAuth or browser cookies'),
    Provider.CURSOR: ProviderInfo('Cursor', '#00A67E', 'Browser cookies'),
    Provider.GEMINI: ProviderInfo('Gemini', '#4285F4', 'Gemini CLI OAuth'),
    Provider.ZAI: ProviderInfo('Zai', '#6366F1', 'API token'),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 string or epoch milliseconds into an aware UTC datetime.

    Returns None for empty or unparseable input.
    """
    if value is None or value == '' or isinstance(value, bool):
        return None

    try:
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    except (ValueError, OverflowError, OSError):
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def seconds_from_now(seconds: Any) -> datetime | None:
    """Return ``now + seconds`` for a positive number, else None."""
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)) or seconds <= 0:
        return None
    return utcnow() + timedelta(seconds=seconds)


@dataclass(frozen=True)
class RateWindow:
    """A usage-quota measurement period (session, weekly, model-specific, ...).

    ``used_percent`` is reported as the provider sends it and may fall outside
    0..100; clamp for display.
    """

    used_percent: float
    label: str | None = None
    window_minutes: int | None = None
    resets_at: datetime | None = None

    @property
    def remaining_percent(self) -> float:
        return 100 - self.used_percent

    @property
    def elapsed_percent(self) -> float | None:
        """Return elapsed percentage of the window (0-100), or None if not calculable."""
        if self.resets_at is None or not self.window_minutes or self.window_minutes <= 0:
            return None

        period = self.window_minutes * 60
        remaining = (self.resets_at - utcnow()).total_seconds()
        return max(0.0, min(100.0, (period - remaining) / period * 100))


@dataclass(frozen=True)
class ProviderCostSnapshot:
    """Pay-per-use spend against a budget (e.g. Claude extra usage, Cursor on-demand)."""

    used: float
    limit: float
    currency_code: str = 'USD'
    period: str | None = None
    resets_at: datetime | None = None

    @property
    def percent_used(self) -> float:
        return self.used / self.limit * 100 if self.limit > 0 else 0


@dataclass(frozen=True)
class ProviderIdentity:
    email: str | None = None
    plan: str | None = None
    organization: str | None = None


@dataclass(frozen=True)
class UsageSnapshot:
    """Usage of one provider at one point in time, or the reason it is missing."""

    provider: Provider
    primary: RateWindow | None = None
    secondary: RateWindow | None = None
    tertiary: RateWindow | None = None
    cost: ProviderCostSnapshot | None = None
    identity: ProviderIdentity | None = None
    captured_at: datetime = field(default_factory=utcnow)
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.error is None and (
            self.primary is not None or self.secondary is not None or self.cost is not None
        )

    @property
    def windows(self) -> list[RateWindow]:
        return [w for w in (self.primary, self.secondary, self.tertiary) if w is not None]

    @classmethod
    def failed(cls, provider: Provider, error: str) -> UsageSnapshot:
        return cls(provider=provider, error=error)
