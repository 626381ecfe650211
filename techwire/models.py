"""Data models for techwire."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse, parse_qs, urlencode

# Query parameters known to be tracking/analytics noise (case-insensitive prefix match)
_TRACKING_PREFIXES = (
    "utm_", "fbclid", "gclid", "msclkid", "mc_cid", "mc_eid",
    "oly_enc_id", "oly_anon_id", "_openstat", "vero_id",
    "wickedid", "yclid", "pk_campaign", "pk_kwd", "pk_source",
    "pk_medium", "pk_content", "ref", "referrer", "source",
    "campaign", "icid", "ncid",
)

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def canonical_url(url: str) -> str:
    """Normalize a URL for dedup: strip www., trailing slash, fragment, and tracking query params."""
    url = (url or "").strip()
    try:
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            return url
        scheme = parsed.scheme.lower()
        if scheme == "http":
            scheme = "https"
        host = parsed.netloc.lower()
        if host.startswith("www."):
            host = host[4:]
        path = parsed.path.rstrip("/") or "/"
        if parsed.query:
            params = parse_qs(parsed.query, keep_blank_values=False)
            clean = {
                k: v for k, v in sorted(params.items())
                if not any(k.lower().startswith(p) for p in _TRACKING_PREFIXES)
            }
            if clean:
                query = urlencode(clean, doseq=True)
                return f"{scheme}://{host}{path}?{query}"
        return f"{scheme}://{host}{path}"
    except ValueError:
        return url


@dataclass
class AggregatedPost:
    id: str
    title: str
    url: str
    score: float = 0
    author: str = ""
    created_at: Optional[datetime] = None
    comment_count: int = 0
    source_tag: str = ""
    discussion_url: str = ""  # HN / Reddit / Lobsters thread, when the link points elsewhere

    @property
    def canonical_url(self) -> str:
        return canonical_url(self.url or self.discussion_url)

    @property
    def created_ts(self) -> float:
        """Creation time as epoch seconds (0 when unknown)."""
        ts = self.created_at or EPOCH
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.timestamp()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "score": self.score,
            "author": self.author,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "comment_count": self.comment_count,
            "source_tag": self.source_tag,
            "discussion_url": self.discussion_url,
        }


@dataclass
class CacheEntry:
    """One row of a cache index. Replaced whole, never patched."""

    key: str
    filename: str
    created_at: float
    source_meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "filename": self.filename,
            "created_at": self.created_at,
            "source_meta": self.source_meta,
        }

    @classmethod
    def from_dict(cls, key: str, d: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=key,
            filename=str(d["filename"]),
            created_at=float(d["created_at"]),
            source_meta=dict(d.get("source_meta") or {}),
        )


@dataclass
class Artifact:
    key: str
    data: bytes
    location: Path
    entry: CacheEntry


@dataclass
class CacheStats:
    count: int = 0
    total_approx_size: int = 0
    expired_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "count": self.count,
            "total_approx_size": self.total_approx_size,
            "expired_count": self.expired_count,
        }


@dataclass
class ProviderResult:
    """Outcome of one provider attempt inside a cascade."""

    provider: str
    succeeded: bool
    payload: Any = None
    error_kind: Optional[str] = None
    error: str = ""
    elapsed_ms: float = 0.0


@dataclass
class SummaryRequest:
    title: str
    url: str = ""
    content: str = ""

    @property
    def identity(self) -> str:
        """Cache identity: the article URL when known, otherwise its title."""
        return self.url.strip() or self.title.strip()


@dataclass
class SummaryResult:
    summary: str
    source: str
    model: str = ""
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"summary": self.summary, "source": self.source, "model": self.model, "cached": self.cached}
