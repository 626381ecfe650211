"""Deduplication and id assignment for aggregated posts."""
import logging
from typing import List, Optional, Sequence, Set

from techwire.models import AggregatedPost
from techwire.utils import fnv1a_32

logger = logging.getLogger(__name__)

_INVALID_IDS = ("", "0", "None")


def deduplicate(posts: List[AggregatedPost]) -> List[AggregatedPost]:
    """Drop posts whose canonical URL was already seen. First occurrence wins."""
    seen: Set[str] = set()
    unique: List[AggregatedPost] = []
    for post in posts:
        key = post.canonical_url
        if not key:
            # Nothing to compare on; keep it
            unique.append(post)
            continue
        if key in seen:
            logger.debug(f"[Dedup] Duplicate dropped: {post.source_tag} {post.url}")
            continue
        seen.add(key)
        unique.append(post)
    return unique


def stable_id(title: str, url: str, position: int, salt: int = 0) -> str:
    """Deterministic 8-hex-digit id from ``(title, url, position)``."""
    material = f"{title}|{url}|{position}"
    if salt:
        material = f"{material}|{salt}"
    return f"{fnv1a_32(material):08x}"


def assign_ids(posts: List[AggregatedPost], positions: Optional[Sequence[int]] = None) -> List[AggregatedPost]:
    """Make ids unique within ``posts`` (in place).

    A provider id is kept unless it is empty, ``"0"``, or already taken by an
    earlier post; otherwise a hash of the post's title, URL and position in
    its source replaces it. ``positions`` defaults to the list index. Same
    input, same ids.
    """
    if positions is None:
        positions = range(len(posts))
    taken: Set[str] = set()
    for post, position in zip(posts, positions):
        pid = str(post.id).strip() if post.id is not None else ""
        if pid in _INVALID_IDS or pid in taken:
            salt = 0
            candidate = stable_id(post.title, post.url, position)
            while candidate in taken:
                salt += 1
                candidate = stable_id(post.title, post.url, position, salt)
            logger.debug(f"[Dedup] Reassigned id {pid!r} -> {candidate}")
            pid = candidate
        post.id = pid
        taken.add(pid)
    return posts
