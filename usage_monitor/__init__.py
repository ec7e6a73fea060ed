"""
Usage Monitor
=============

Tracks usage quotas of AI coding assistants (Claude, Codex, Cursor, Gemini,
Zai) by reading the credentials the user already has on disk and polling each
service's usage endpoint.
"""
from .credentials import ManualCredentialStore
from .models import Provider, ProviderCostSnapshot, ProviderIdentity, RateWindow, UsageSnapshot
from .registry import FetcherRegistry, FetchOrchestrator, create_default_registry

__version__ = '1.0.0'

__all__ = [
    'FetchOrchestrator', 'FetcherRegistry', 'ManualCredentialStore', 'Provider', 'ProviderCostSnapshot',
    'ProviderIdentity', 'RateWindow', 'UsageSnapshot', 'create_default_registry',
]
