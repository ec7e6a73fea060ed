"""
Fetcher Registry
================

:class:`FetcherRegistry` maps each provider to its fetcher and is built once
at startup by :func:`create_default_registry`.  :class:`FetchOrchestrator`
fans a refresh out over a thread pool and collects one snapshot per provider;
a failing, slow or unregistered provider never affects the others.
"""
from __future__ import annotations

import concurrent.futures
import logging
from typing import Iterable, Mapping

from .browser_cookies import BrowserCredentialVault
from .credentials import CredentialResolver, ManualCredentialStore
from .i18n import T
from .models import Provider, UsageSnapshot
from .providers.base import ProviderFetcher
from .providers.claude import ClaudeFetcher
from .providers.codex import CodexFetcher
from .providers.cursor import CursorFetcher
from .providers.gemini import GeminiFetcher
from .providers.zai import ZaiFetcher

log = logging.getLogger(__name__)


class FetcherRegistry:
    """Provider → fetcher map."""

    def __init__(self, fetchers: Mapping[Provider, ProviderFetcher] | None = None) -> None:
        self._fetchers: dict[Provider, ProviderFetcher] = dict(fetchers or {})

    def register(self, provider: Provider, fetcher: ProviderFetcher) -> None:
        self._fetchers[provider] = fetcher

    def get(self, provider: Provider) -> ProviderFetcher | None:
        return self._fetchers.get(provider)

    @property
    def providers(self) -> list[Provider]:
        return list(self._fetchers)

    def __contains__(self, provider: object) -> bool:
        return provider in self._fetchers

    def __len__(self) -> int:
        return len(self._fetchers)


def create_default_registry(
    manual_store: ManualCredentialStore | None = None, vault: BrowserCredentialVault | None = None,
) -> FetcherRegistry:
    """Build the registry of all supported providers.

    Parameters
    ----------
    manual_store : ManualCredentialStore, optional
        Credentials pasted by the user; an empty store if omitted.
    vault : BrowserCredentialVault, optional
        Browser cookie reader; reads the default Chromium profiles if omitted.

    Returns
    -------
    FetcherRegistry
        One fetcher instance per provider.
    """
    resolver = CredentialResolver(manual_store or ManualCredentialStore(), vault or BrowserCredentialVault())
    return FetcherRegistry({
        Provider.CLAUDE: ClaudeFetcher(resolver),
        Provider.CODEX: CodexFetcher(resolver),
        Provider.CURSOR: CursorFetcher(resolver),
        Provider.GEMINI: GeminiFetcher(),
        Provider.ZAI: ZaiFetcher(resolver),
    })


class FetchOrchestrator:
    """Run provider fetches concurrently.

    The thread pool belongs to the orchestrator; call :meth:`close` (or use it
    as a context manager) when done.
    """

    def __init__(self, registry: FetcherRegistry, max_workers: int | None = None) -> None:
        self.registry = registry
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers or max(len(registry), 1), thread_name_prefix='usage-fetch',
        )

    def fetch(self, provider: Provider) -> UsageSnapshot:
        """Fetch one provider in the calling thread."""
        fetcher = self.registry.get(provider)
        if fetcher is None:
            return UsageSnapshot.failed(provider, T['not_implemented'])
        return fetcher.fetch()

    def fetch_all(
        self, enabled: Iterable[Provider] | None = None, timeout: float | None = None,
    ) -> dict[Provider, UsageSnapshot]:
        """Fetch every enabled provider in parallel.

        Parameters
        ----------
        enabled : iterable of Provider, optional
            Providers to fetch; all registered providers if omitted.
        timeout : float, optional
            Deadline for the whole batch in seconds.  Providers still running
            when it passes get an error snapshot and their tasks are cancelled.

        Returns
        -------
        dict
            One snapshot per requested provider, in request order.
        """
        providers = list(dict.fromkeys(enabled if enabled is not None else self.registry.providers))
        futures = {provider: self._executor.submit(self.fetch, provider) for provider in providers}
        log.debug('Fetching %s', ', '.join(p.value for p in providers))

        concurrent.futures.wait(futures.values(), timeout=timeout)

        results: dict[Provider, UsageSnapshot] = {}
        for provider, future in futures.items():
            if not future.done():
                future.cancel()
                log.warning('%s: no result within %ss', provider.value, timeout)
                results[provider] = UsageSnapshot.failed(provider, T['batch_timeout'])
                continue
            try:
                results[provider] = future.result()
            except Exception as e:
                log.exception('%s: fetch task failed', provider.value)
                results[provider] = UsageSnapshot.failed(provider, T['unexpected_error'].format(error=e))
        return results

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> FetchOrchestrator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
