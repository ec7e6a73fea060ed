"""Fetcher capability shared by all providers."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Sequence

import requests

from ..credentials import CredentialSource
from ..errors import CredentialExpired, CredentialNotFound, NetworkError, ParseError, Unauthorized, UsageMonitorError
from ..i18n import T
from ..models import Provider, UsageSnapshot
from ..oauth import OAuthCredential, OAuthCredentialManager

log = logging.getLogger(__name__)


def request_json(session: requests.Session, method: str, url: str, *, timeout: float, **kwargs: Any) -> Any:
    """Send a request and return the decoded JSON body.

    Raises
    ------
    Unauthorized
        On HTTP 401.
    NetworkError
        On connection failure, timeout or any other HTTP error status.
    ParseError
        If the body is not JSON.
    """
    try:
        resp = session.request(method, url, timeout=timeout, **kwargs)
        resp.raise_for_status()
    except requests.Timeout as e:
        raise NetworkError(T['timeout_error']) from e
    except requests.ConnectionError as e:
        raise NetworkError(T['connection_error']) from e
    except requests.HTTPError as e:
        code = e.response.status_code if e.response is not None else 0
        if code == 401:
            raise Unauthorized(T['auth_expired']) from e
        raise NetworkError(T['http_error'].format(code=code or '?')) from e
    except requests.RequestException as e:
        raise NetworkError(T['connection_error']) from e

    try:
        return resp.json()
    except ValueError as e:
        raise ParseError(T['parse_error']) from e


def expect_dict(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ParseError(T['parse_error'])
    return payload


def number(value: Any) -> float | None:
    """Return *value* as float if it is numeric (or a numeric string), else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


class ProviderFetcher(ABC):
    """Fetch usage for one provider.

    :meth:`fetch` never raises; subclasses implement :meth:`_fetch` and may
    raise any :class:`UsageMonitorError`, which becomes the snapshot error.
    """

    provider: Provider

    def __init__(self, session: requests.Session | None = None) -> None:
        self.session = session or requests.Session()

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the credentials this fetcher needs are present."""

    @abstractmethod
    def _fetch(self) -> UsageSnapshot:
        ...

    def fetch(self) -> UsageSnapshot:
        try:
            return self._fetch()
        except UsageMonitorError as e:
            log.info('%s: %s: %s', self.provider.value, type(e).__name__, e)
            return UsageSnapshot.failed(self.provider, str(e))
        except Exception as e:
            log.exception('%s: unexpected error', self.provider.value)
            return UsageSnapshot.failed(self.provider, T['unexpected_error'].format(error=e))


class CombinedFetcher(ProviderFetcher):
    """Try several strategies in order and return the first valid snapshot.

    A strategy whose credentials are missing (it raises
    :class:`CredentialNotFound`) is skipped, so each strategy resolves its
    credentials once per fetch.  If every strategy was skipped the snapshot
    carries *missing_message*; if some ran and all failed, the last failure is
    returned.
    """

    def __init__(self, provider: Provider, strategies: Sequence[ProviderFetcher], missing_message: str) -> None:
        self.provider = provider
        self.strategies = tuple(strategies)
        self.missing_message = missing_message

    def is_available(self) -> bool:
        return any(strategy.is_available() for strategy in self.strategies)

    def _fetch(self) -> UsageSnapshot:
        last: UsageSnapshot | None = None
        for strategy in self.strategies:
            name = type(strategy).__name__
            try:
                result = strategy._fetch()
            except CredentialNotFound as e:
                log.debug('%s: %s skipped (%s)', self.provider.value, name, e)
                continue
            except UsageMonitorError as e:
                result = UsageSnapshot.failed(self.provider, str(e))
            except Exception as e:
                log.exception('%s: %s raised an unexpected error', self.provider.value, name)
                result = UsageSnapshot.failed(self.provider, T['unexpected_error'].format(error=e))

            if result.is_valid:
                return result
            log.info('%s: %s failed (%s), trying next strategy', self.provider.value, name, result.error)
            last = result

        if last is not None:
            return last
        raise CredentialNotFound(self.missing_message)


class OAuthUsageFetcher(ProviderFetcher):
    """Fetcher authenticated by a provider CLI's OAuth credential file.

    An expired token is refreshed before use.  A 401 from the usage endpoint
    triggers exactly one refresh and one retry; a second 401 is reported.
    """

    missing_message = ''

    def __init__(self, manager: OAuthCredentialManager, session: requests.Session | None = None) -> None:
        super().__init__(session)
        self.manager = manager

    def accepts(self, credential: OAuthCredential) -> bool:
        return True

    def is_available(self) -> bool:
        credential = self.manager.load()
        return credential is not None and self.accepts(credential)

    @abstractmethod
    def fetch_with(self, credential: OAuthCredential) -> UsageSnapshot:
        """Fetch usage with *credential*; raise :class:`Unauthorized` on 401."""

    def _fetch(self) -> UsageSnapshot:
        credential = self.manager.load_with_auto_refresh()
        if credential is None:
            if self.manager.load() is not None:
                raise CredentialExpired(T['refresh_failed'])
            raise CredentialNotFound(self.missing_message)
        log.debug('%s: using %s credential', self.provider.value, CredentialSource.OAUTH_FILE.value)

        try:
            return self.fetch_with(credential)
        except Unauthorized:
            if not credential.refresh_token or credential.is_api_key:
                raise
            log.info('%s: usage endpoint rejected the token, refreshing once', self.provider.value)
            refreshed = self.manager.refresh_and_save(credential)
            if refreshed is None:
                raise
            return self.fetch_with(refreshed)
