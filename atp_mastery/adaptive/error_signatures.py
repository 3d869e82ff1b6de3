"""
Error Signatures.

Aggregates the error tags attached to graded attempts into per-skill
frequency records. The gate reads the top tags to block certification while a
signature mistake keeps recurring; the planner reads them to match items that
target unresolved errors.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable

from atp_mastery.core.mastery import as_utc, utc_now
from atp_mastery.core.models import Attempt, ErrorSignature


def build_error_signatures(
    attempts: Iterable[Attempt],
    now: datetime | None = None,
) -> dict[str, list[ErrorSignature]]:
    """
    Count error tags per skill.

    A tag on an attempt counts once for every skill the attempt covers.

    Args:
        attempts: Attempt history (any order)
        now: Reference time for the 30/90-day windows

    Returns:
        Signatures keyed by skill id
    """
    now = as_utc(now or utc_now())
    cutoff_30 = now - timedelta(days=30)
    cutoff_90 = now - timedelta(days=90)

    counts: dict[tuple[str, str], dict] = defaultdict(
        lambda: {"count_30d": 0, "count_90d": 0, "count_total": 0, "last_seen_at": None}
    )

    for attempt in attempts:
        if not attempt.error_tags:
            continue
        submitted = as_utc(attempt.submitted_at)
        for coverage in attempt.skills:
            for tag in set(attempt.error_tags):
                entry = counts[(coverage.skill_id, tag)]
                entry["count_total"] += 1
                if submitted >= cutoff_90:
                    entry["count_90d"] += 1
                if submitted >= cutoff_30:
                    entry["count_30d"] += 1
                if entry["last_seen_at"] is None or submitted > entry["last_seen_at"]:
                    entry["last_seen_at"] = submitted

    signatures: dict[str, list[ErrorSignature]] = defaultdict(list)
    for (skill_id, tag), entry in counts.items():
        signatures[skill_id].append(ErrorSignature(skill_id=skill_id, error_tag=tag, **entry))

    return {
        skill_id: _ranked(items) for skill_id, items in sorted(signatures.items())
    }


def _ranked(signatures: Iterable[ErrorSignature]) -> list[ErrorSignature]:
    # Most frequent first, then most recent, then tag code
    def key(signature: ErrorSignature) -> tuple[int, float, str]:
        seen = signature.last_seen_at
        seen_ts = as_utc(seen).timestamp() if seen is not None else float("-inf")
        return (-signature.count_total, -seen_ts, signature.error_tag)

    return sorted(signatures, key=key)


def top_error_tags(
    signatures: dict[str, list[ErrorSignature]] | Iterable[ErrorSignature],
    skill_id: str,
    n: int = 3,
) -> list[str]:
    """
    The n most frequent error tags for a skill.

    Ties on total count go to the most recently seen tag, then to the tag code.
    """
    if isinstance(signatures, dict):
        candidates = signatures.get(skill_id, [])
    else:
        candidates = [s for s in signatures if s.skill_id == skill_id]
    return [s.error_tag for s in _ranked(candidates)[:n]]


def recent_error_tags(
    signatures: dict[str, list[ErrorSignature]],
    window_days: int = 90,
) -> dict[str, set[str]]:
    """Tags seen within the window, per skill (unresolved signatures)."""
    result: dict[str, set[str]] = {}
    for skill_id, items in signatures.items():
        if window_days <= 30:
            tags = {s.error_tag for s in items if s.count_30d > 0}
        else:
            tags = {s.error_tag for s in items if s.count_90d > 0}
        if tags:
            result[skill_id] = tags
    return result
