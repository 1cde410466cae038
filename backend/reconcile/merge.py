"""
Pure merge rules for reconciled progress.

Holds for every call, including the first one where `existing` is None:

- identity-like fields (title, platform label, status, release link) are
  only filled in, never replaced
- playtime is the max of what is stored and what arrives; a missing value
  contributes nothing, and it stays None until some provider reports it
- counters take the incoming value only when it is present
- the timestamp is the later of the two instants, or `now` if neither exists
"""
from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from shared.errors import MalformedUpstreamPayload
from shared.models.domain import COUNTER_FIELDS, ProviderSignal, ReconciledProgress

IDENTITY_FIELDS: tuple[str, ...] = ("title", "platform_label", "status")

_GLYPHS = re.compile(r"[™®©]")
_DASHES = re.compile(r"[:\-–—]")
_NON_WORD = re.compile(r"[^\w\s]")
_WS = re.compile(r"\s+")


def _key_part(value: str) -> str:
    s = _GLYPHS.sub("", value.lower())
    s = _DASHES.sub(" ", s)
    s = _NON_WORD.sub("", s)
    return _WS.sub(" ", s).strip()


def synthetic_id(title: str, platform_label: Optional[str]) -> str:
    """Deterministic stand-in key for titles that arrive without a native id."""
    return f"synthetic:{_key_part(platform_label or 'unknown')}:{_key_part(title)}"


def resolve_key(signal: ProviderSignal) -> str:
    native = (signal.native_id or "").strip()
    if native:
        return native
    title = (signal.title or "").strip()
    if title:
        return synthetic_id(title, signal.platform_label)
    raise MalformedUpstreamPayload("Missing title and native id")


def _aware(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is not None and ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def _later(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    a, b = _aware(a), _aware(b)
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def _max_playtime(existing: Optional[int], incoming: Optional[int]) -> Optional[int]:
    values = [v for v in (existing, incoming) if v is not None and v >= 0]
    return max(values) if values else existing


def merge_progress(
    existing: Optional[ReconciledProgress],
    incoming: ProviderSignal,
    *,
    user_id: str,
    key: str,
    now: datetime,
    release_id: Optional[uuid.UUID] = None,
) -> ReconciledProgress:
    current: dict[str, Any] = existing.model_dump() if existing is not None else {}
    arriving: dict[str, Any] = incoming.model_dump()
    arriving["release_id"] = release_id

    merged: dict[str, Any] = {
        "user_id": user_id,
        "source": incoming.source,
        "key": key,
    }

    for field in IDENTITY_FIELDS + ("release_id",):
        value = current.get(field)
        merged[field] = value if value is not None else arriving.get(field)

    merged["playtime_minutes"] = _max_playtime(
        current.get("playtime_minutes"), incoming.playtime_minutes
    )

    for field in COUNTER_FIELDS:
        value = arriving.get(field)
        merged[field] = value if value is not None else current.get(field)

    merged["updated_at"] = (
        _later(current.get("updated_at"), incoming.last_activity_at) or _aware(now)
    )
    return ReconciledProgress.model_validate(merged)
