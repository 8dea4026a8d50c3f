"""Qualification and de-duplication rules for raw feed comments."""

from __future__ import annotations

from collections.abc import Iterable

from .round import RawComment


def normalize_handle(handle: str | None) -> str:
    return (handle or "").strip().casefold()


def qualifies(text: str | None, keyword: str = "") -> bool:
    """True if ``text`` contains ``keyword`` (case-insensitive); an empty keyword accepts all."""
    if not keyword:
        return True
    return keyword.casefold() in (text or "").casefold()


def qualifying_candidates(comments: Iterable[RawComment], keyword: str = "") -> list[RawComment]:
    """Keep the first qualifying comment per handle, in feed order.

    Handles compare case-insensitively; blank handles never qualify.
    """
    seen: set[str] = set()
    candidates: list[RawComment] = []
    for comment in comments:
        key = normalize_handle(comment.handle)
        if not key or key in seen:
            continue
        if not qualifies(comment.text, keyword):
            continue
        seen.add(key)
        candidates.append(comment)
    return candidates
