"""Provider outcome tracking.

Each cascade owns one ``ProviderStats``; nothing is shared between
instances and nothing is written to disk. The numbers are informational
(CLI ``providers`` report, ``TechWire.stats()``): provider order is
fixed and never reacts to them.
"""
import logging
import time
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

_MAX_TIMINGS = 50


class ProviderStats:
    """Per-provider counters for one cascade."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.data: Dict[str, dict] = {}
        self.cache_hits = 0
        self.fallbacks = 0

    def _ensure(self, provider: str) -> dict:
        if provider not in self.data:
            self.data[provider] = {
                "attempts": 0,
                "successes": 0,
                "failures": {},
                "last_success": None,
                "response_times_ms": [],
            }
        return self.data[provider]

    def record_success(self, provider: str, response_ms: float = 0) -> None:
        d = self._ensure(provider)
        d["attempts"] += 1
        d["successes"] += 1
        d["last_success"] = self.clock()
        if response_ms > 0:
            timings = d["response_times_ms"]
            timings.append(round(response_ms, 1))
            if len(timings) > _MAX_TIMINGS:
                d["response_times_ms"] = timings[-_MAX_TIMINGS:]

    def record_failure(self, provider: str, kind: str) -> None:
        d = self._ensure(provider)
        d["attempts"] += 1
        d["failures"][kind] = d["failures"].get(kind, 0) + 1

    def record_cache_hit(self) -> None:
        self.cache_hits += 1

    def record_fallback(self) -> None:
        self.fallbacks += 1

    def success_rate(self, provider: str) -> Optional[float]:
        d = self.data.get(provider)
        if not d or not d["attempts"]:
            return None
        return round(d["successes"] / d["attempts"], 2)

    @property
    def summary(self) -> Dict[str, dict]:
        """Return per-provider summary with computed stats."""
        result = {}
        for provider, d in self.data.items():
            timings = d["response_times_ms"]
            result[provider] = {
                "attempts": d["attempts"],
                "successes": d["successes"],
                "failures": dict(d["failures"]),
                "success_rate": self.success_rate(provider),
                "avg_ms": round(sum(timings) / len(timings), 1) if timings else None,
                "last_success": d["last_success"],
            }
        return result

    def to_dict(self) -> dict:
        return {
            "providers": self.summary,
            "cache_hits": self.cache_hits,
            "fallbacks": self.fallbacks,
        }
