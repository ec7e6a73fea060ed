"""One fetcher module per usage provider."""
from .base import CombinedFetcher, OAuthUsageFetcher, ProviderFetcher
from .claude import ClaudeFetcher
from .codex import CodexFetcher
from .cursor import CursorFetcher
from .gemini import GeminiFetcher
from .zai import ZaiFetcher

__all__ = [
    'ClaudeFetcher', 'CodexFetcher', 'CombinedFetcher', 'CursorFetcher', 'GeminiFetcher', 'OAuthUsageFetcher',
    'ProviderFetcher', 'ZaiFetcher',
]
