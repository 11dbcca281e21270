"""Closest-match lookup for mistyped tenant subdomains."""

from __future__ import annotations

from collections.abc import Iterable

MAX_SUGGESTION_DISTANCE = 3


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings (insert, delete, substitute)."""
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            ))
        previous = current
    return previous[-1]


def find_closest_tenant(
    candidate: str,
    known: Iterable[str],
    max_distance: int = MAX_SUGGESTION_DISTANCE,
) -> str | None:
    """Return the known tenant nearest to *candidate*, or None.

    Comparison is case-insensitive. Ties keep the first tenant in *known*.
    """
    best: str | None = None
    best_distance = max_distance + 1
    lowered = candidate.lower()
    for tenant in known:
        distance = levenshtein(lowered, tenant.lower())
        if distance < best_distance:
            best = tenant
            best_distance = distance
    return best
