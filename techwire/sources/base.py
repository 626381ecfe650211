"""Base class for HTTP-backed providers.

Unlike a crawler that retries until it gives up quietly, a provider raises
on every failure (``requests.HTTPError``, ``requests.Timeout``,
``MalformedResponseError`` ...) so that its cascade can classify the error
and move on to the next provider.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter

from techwire.models import AggregatedPost

logger = logging.getLogger(__name__)


def default_headers(user_agent: Optional[str] = None) -> Dict[str, str]:
    from techwire import __version__
    return {
        "User-Agent": user_agent or f"techwire/{__version__} (tech news aggregator)",
    }


def build_session(pool_size: int = 20) -> requests.Session:
    """A ``requests.Session`` with a pooled adapter and no automatic retries."""
    s = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=pool_size,
        pool_maxsize=pool_size,
        max_retries=0,  # cascades decide what happens after a failure
    )
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


class DomainRateLimiter:
    """Minimum spacing between requests to the same domain (thread-safe).

    Calculates the wait under the lock but sleeps outside it so other
    domains are not blocked while one domain is being throttled.
    """

    def __init__(
        self,
        min_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.min_interval = min_interval
        self.clock = clock
        self.sleep = sleep
        self._last: Dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, url: str) -> float:
        """Block until ``url``'s domain may be hit again; return seconds waited."""
        domain = urlparse(url).netloc
        with self._lock:
            now = self.clock()
            last = self._last.get(domain)
            wait_time = 0.0
            if last is not None and now - last < self.min_interval:
                wait_time = self.min_interval - (now - last)
            # Reserve the slot so concurrent callers queue behind us
            self._last[domain] = now + wait_time
        if wait_time > 0:
            self.sleep(wait_time)
        return wait_time


class BaseProvider(ABC):
    """One upstream endpoint that can satisfy a cascade request."""

    name: str = "unknown"
    timeout: float = 15

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[DomainRateLimiter] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.session = session or build_session()
        self.rate_limiter = rate_limiter
        self.headers = default_headers(user_agent)
        if timeout is not None:
            self.timeout = timeout

    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        throttle: bool = True,
        **kwargs,
    ) -> requests.Response:
        """Send one request; raise ``requests.HTTPError`` on a non-2xx status.

        ``throttle=False`` skips the per-domain limiter, for fan-out requests
        that are already bounded by a worker pool.
        """
        if throttle and self.rate_limiter is not None:
            self.rate_limiter.wait(url)
        resp = self.session.request(
            method, url, headers={**self.headers, **(headers or {})}, timeout=self.timeout, **kwargs
        )
        resp.raise_for_status()
        return resp

    def fetch_json(self, url: str, **kwargs) -> Any:
        """GET ``url`` and decode JSON (``ValueError`` on a bad body)."""
        return self.request("GET", url, **kwargs).json()

    def fetch_url(self, url: str, **kwargs) -> str:
        return self.request("GET", url, **kwargs).text

    @abstractmethod
    def attempt(self, request):
        """Produce a payload for ``request`` or raise."""
        ...


class SourceProvider(BaseProvider):
    """A provider whose payload is a list of posts for one news source."""

    source: str = "unknown"

    @abstractmethod
    def attempt(self, limit: int) -> List[AggregatedPost]:
        """Return up to ``limit`` posts, in the upstream's own ranking order."""
        ...
