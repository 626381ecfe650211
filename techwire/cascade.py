"""Ordered provider fallback.

A ``Cascade`` tries providers in their fixed priority order and returns the
first payload that passes validation. Every provider failure (timeout, HTTP
error, missing credentials, malformed or too-short payload, or an
unexpected exception) is logged and advances to the next provider. When
all providers fail the local ``fallback`` produces the result, so a cascade
always succeeds:

    NOT_STARTED -> TRYING_PROVIDER(1) -> ... -> TRYING_PROVIDER(n)
                -> FALLBACK_PRODUCING -> SUCCEEDED

Providers are objects with a ``name`` and an ``attempt(request)`` method,
either a coroutine or a plain blocking function. Blocking attempts run in a
worker thread; when they overrun the timeout their late result is dropped.
"""
from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Collection, Generic, List, Optional, Sequence, TypeVar

import requests

from techwire.errors import ProviderError, StorageError, ValidationError
from techwire.health import ProviderStats
from techwire.models import CacheEntry, ProviderResult
from techwire.store import ArtifactStore

logger = logging.getLogger(__name__)

Req = TypeVar("Req")
Out = TypeVar("Out")

DEFAULT_TIMEOUT = 15.0
FALLBACK = "fallback"


class CascadeState(enum.Enum):
    NOT_STARTED = "not_started"
    TRYING_PROVIDER = "trying_provider"
    FALLBACK_PRODUCING = "fallback_producing"
    SUCCEEDED = "succeeded"


@dataclass
class CascadeOutcome(Generic[Out]):
    payload: Out
    provider: str
    cached: bool = False
    location: Optional[Path] = None
    attempts: List[ProviderResult] = field(default_factory=list)
    states: List[CascadeState] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.provider == FALLBACK


@dataclass
class CacheBinding(Generic[Req, Out]):
    """How a cascade reads and writes its results through an ``ArtifactStore``."""

    store: ArtifactStore
    key: Callable[[Any], str]
    encode: Callable[[Any], bytes] = lambda payload: payload.encode("utf-8")
    decode: Callable[[bytes, CacheEntry], Any] = lambda data, entry: data.decode("utf-8")
    meta: Callable[[Any, Any, str], dict] = lambda request, payload, provider: {"provider": provider}


def classify(exc: BaseException) -> str:
    """Map an attempt failure to an error kind."""
    if isinstance(exc, asyncio.TimeoutError):
        return "timeout"
    if isinstance(exc, ProviderError):
        return exc.kind
    if isinstance(exc, requests.Timeout):
        return "timeout"
    if isinstance(exc, requests.HTTPError):
        return "http"
    if isinstance(exc, ValueError):
        # json.JSONDecodeError and pydantic errors are ValueErrors
        return "malformed"
    if isinstance(exc, requests.RequestException):
        return "transient"
    return "unexpected"


class Cascade(Generic[Req, Out]):
    def __init__(
        self,
        name: str,
        providers: Sequence[Any],
        fallback: Callable[[Req], Out],
        validate: Optional[Callable[[Out], bool]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        cache: Optional[CacheBinding] = None,
        stats: Optional[ProviderStats] = None,
    ):
        self.name = name
        self.providers = list(providers)
        self.fallback = fallback
        self.validate = validate
        self.timeout = timeout
        self.cache = cache
        self.stats = stats or ProviderStats()

    @property
    def provider_names(self) -> List[str]:
        return [p.name for p in self.providers]

    async def _call(self, provider: Any, request: Req) -> Any:
        attempt = provider.attempt
        if inspect.iscoroutinefunction(attempt):
            coro = attempt(request)
        else:
            coro = asyncio.to_thread(attempt, request)
        return await asyncio.wait_for(coro, timeout=self.timeout)

    async def _try(self, provider: Any, request: Req) -> ProviderResult:
        t0 = time.monotonic()
        try:
            payload = await self._call(provider, request)
            if self.validate is not None and not self.validate(payload):
                raise ValidationError("payload failed validation", provider=provider.name)
        except Exception as e:
            elapsed = (time.monotonic() - t0) * 1000
            kind = classify(e)
            self.stats.record_failure(provider.name, kind)
            if kind == "configuration":
                logger.info(f"[Cascade:{self.name}] {provider.name} not configured: {e}")
            elif kind == "unexpected":
                logger.warning(
                    f"[Cascade:{self.name}] {provider.name} raised unexpectedly: {e!r}", exc_info=True
                )
            else:
                logger.warning(f"[Cascade:{self.name}] {provider.name} failed ({kind}) in {elapsed:.0f}ms: {e}")
            return ProviderResult(
                provider=provider.name, succeeded=False, error_kind=kind, error=str(e), elapsed_ms=elapsed
            )
        elapsed = (time.monotonic() - t0) * 1000
        self.stats.record_success(provider.name, elapsed)
        return ProviderResult(provider=provider.name, succeeded=True, payload=payload, elapsed_ms=elapsed)

    async def _lookup(self, request: Req) -> Optional[CascadeOutcome]:
        if self.cache is None:
            return None
        artifact = await self.cache.store.get(self.cache.key(request))
        if artifact is None:
            return None
        try:
            payload = self.cache.decode(artifact.data, artifact.entry)
        except (ValueError, KeyError) as e:
            logger.warning(f"[Cascade:{self.name}] Undecodable cache entry {artifact.key!r}: {e}")
            return None
        self.stats.record_cache_hit()
        logger.debug(f"[Cascade:{self.name}] Cache hit for {artifact.key!r}")
        return CascadeOutcome(
            payload=payload,
            provider=artifact.entry.source_meta.get("provider", "cache"),
            cached=True,
            location=artifact.location,
            states=[CascadeState.NOT_STARTED, CascadeState.SUCCEEDED],
        )

    async def _persist(self, request: Req, payload: Out, provider: str) -> Optional[Path]:
        if self.cache is None:
            return None
        try:
            return await self.cache.store.put(
                self.cache.key(request),
                self.cache.encode(payload),
                self.cache.meta(request, payload, provider),
            )
        except (StorageError, ValueError) as e:
            logger.warning(f"[Cascade:{self.name}] Not cached, returning fresh result: {e}")
            return None

    async def run(self, request: Req, skip: Collection[str] = ()) -> CascadeOutcome[Out]:
        """Resolve ``request``. Never raises for provider failures.

        ``skip`` names providers to bypass for this call only.
        """
        hit = await self._lookup(request)
        if hit is not None:
            return hit

        states = [CascadeState.NOT_STARTED]
        attempts: List[ProviderResult] = []
        for provider in self.providers:
            if provider.name in skip:
                logger.debug(f"[Cascade:{self.name}] Skipping {provider.name}")
                continue
            states.append(CascadeState.TRYING_PROVIDER)
            result = await self._try(provider, request)
            attempts.append(result)
            if result.succeeded:
                location = await self._persist(request, result.payload, provider.name)
                states.append(CascadeState.SUCCEEDED)
                logger.info(f"[Cascade:{self.name}] {provider.name} succeeded in {result.elapsed_ms:.0f}ms")
                return CascadeOutcome(
                    payload=result.payload,
                    provider=provider.name,
                    location=location,
                    attempts=attempts,
                    states=states,
                )

        states.append(CascadeState.FALLBACK_PRODUCING)
        payload = self.fallback(request)
        self.stats.record_fallback()
        states.append(CascadeState.SUCCEEDED)
        if attempts:
            logger.info(f"[Cascade:{self.name}] All {len(attempts)} provider(s) failed, using fallback")
        return CascadeOutcome(payload=payload, provider=FALLBACK, attempts=attempts, states=states)

