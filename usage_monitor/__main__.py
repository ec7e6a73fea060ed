"""
Console report: ``python -m usage_monitor [providers...] [--timeout S] [--verbose]``

Fetches every requested provider once, prints the report and exits with
status 1 if no provider returned usable data.
"""
from __future__ import annotations

import argparse
import logging
import sys

from .logs import configure_logging
from .models import Provider
from .registry import FetchOrchestrator, create_default_registry
from .report import format_report

log = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='usage_monitor', description='Show AI assistant usage quotas.')
    parser.add_argument(
        'providers', nargs='*', type=Provider, metavar='provider',
        help=f"providers to query ({', '.join(p.value for p in Provider)}); default: all",
    )
    parser.add_argument('--timeout', type=float, default=None, help='deadline for the whole batch in seconds')
    parser.add_argument('--verbose', '-v', action='store_true', help='write debug output to the log file')
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging('DEBUG' if args.verbose else None)

    enabled = args.providers or None
    log.info('Usage report started for %s', ', '.join(p.value for p in args.providers) or 'all providers')

    with FetchOrchestrator(create_default_registry()) as orchestrator:
        results = orchestrator.fetch_all(enabled, timeout=args.timeout)

    print(format_report(results))
    return 0 if any(snapshot.is_valid for snapshot in results.values()) else 1


if __name__ == '__main__':
    sys.exit(main())
