"""Plain-text rendering of usage snapshots."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Mapping

from .i18n import T
from .models import Provider, RateWindow, UsageSnapshot, utcnow


def time_until(reset: datetime | None, now: datetime | None = None) -> str:
    """Return human-readable reset time.

    Same day:  "resets in 2h 20m (14:30)"
    Tomorrow:  "resets tomorrow, 12:00"
    Later:     "resets Sat., 12:00"
    """
    if reset is None:
        return ''
    now = now or utcnow()

    total_min = max(0, int((reset - now).total_seconds() / 60))
    if total_min == 0:
        return ''

    reset_local = reset.astimezone()
    today = now.astimezone().date()
    if reset_local.second >= 30:
        reset_local = reset_local.replace(second=0, microsecond=0) + timedelta(minutes=1)
    else:
        reset_local = reset_local.replace(second=0, microsecond=0)
    reset_date = reset_local.date()
    time_str = reset_local.strftime('%H:%M')

    if reset_date == today:
        if total_min >= 60:
            duration = T['duration_hm'].format(h=total_min // 60, m=total_min % 60)
        else:
            duration = T['duration_m'].format(m=total_min)
        return T['resets_in'].format(duration=duration, clock=time_str)

    if reset_date == today + timedelta(days=1):
        return T['resets_tomorrow'].format(clock=time_str)

    wd = T['weekdays'][reset_local.weekday()]
    return T['resets_weekday'].format(day=wd, clock=time_str)


def window_label(window: RateWindow) -> str:
    if window.label:
        return window.label
    minutes = window.window_minutes
    if not minutes:
        return T['label_session']
    if minutes >= 24 * 60:
        return f'{minutes // (24 * 60)}d'
    if minutes >= 60:
        return f'{minutes // 60}h'
    return f'{minutes}m'


def format_snapshot(snapshot: UsageSnapshot, now: datetime | None = None) -> str:
    """Format one provider's snapshot as a short text block."""
    heading = snapshot.provider.info.name
    identity = snapshot.identity
    if identity is not None and identity.plan:
        heading += f' ({identity.plan})'
    lines = [heading]

    if snapshot.error is not None:
        lines.append(f"  {T['error_label']}: {snapshot.error[:200]}")
        return '\n'.join(lines)
    if not snapshot.is_valid:
        lines.append(f"  {T['no_data']}")
        return '\n'.join(lines)

    for window in snapshot.windows:
        line = f'  {window_label(window)}: {max(0.0, min(100.0, window.used_percent)):.0f}%'
        reset = time_until(window.resets_at, now)
        if reset:
            line += f' ({reset})'
        lines.append(line)

    cost = snapshot.cost
    if cost is not None:
        lines.append('  ' + T['cost_line'].format(
            period=cost.period or T['label_plan'], used=cost.used, limit=cost.limit, currency=cost.currency_code,
        ))

    if identity is not None and identity.email:
        lines.append(f'  {identity.email}')

    return '\n'.join(lines)


def format_report(snapshots: Mapping[Provider, UsageSnapshot], now: datetime | None = None) -> str:
    """Format every snapshot, separated by blank lines."""
    if not snapshots:
        return T['no_data']
    blocks = [format_snapshot(snapshot, now) for snapshot in snapshots.values()]
    return f"{T['title']}\n\n" + '\n\n'.join(blocks)
