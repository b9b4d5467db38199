"""Match roster rows against KMZ points by normalized house number."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Sequence

from ..core import GeoPoint, MatchReason, MatchResult, MatchStatus, RosterRow
from ..utils import leading_number, normalize_house_number

logger = logging.getLogger(__name__)


class PointIndex:
    """Lookup from normalized key to candidate points, in extraction order."""

    def __init__(self) -> None:
        self._candidates: dict[str, list[GeoPoint]] = {}

    @classmethod
    def build(cls, points: Iterable[GeoPoint]) -> "PointIndex":
        index = cls()
        for point in points:
            index._candidates.setdefault(point.key, []).append(point)
        return index

    def candidates(self, key: str) -> tuple[GeoPoint, ...]:
        return tuple(self._candidates.get(key, ()))

    def __len__(self) -> int:
        return len(self._candidates)

    def __contains__(self, key: object) -> bool:
        return key in self._candidates


class HouseNumberMatcher:
    """Classify roster rows as matched, ambiguous, partially matched or missing."""

    def match(self, rows: Sequence[RosterRow], points: Iterable[GeoPoint]) -> list[MatchResult]:
        index = PointIndex.build(points)
        results = [self.classify(row, index) for row in rows]

        counts = Counter(result.status.value for result in results)
        logger.info("Auto-match finished for %s row(s): %s", len(results), dict(sorted(counts.items())))
        return results

    def classify(self, row: RosterRow, index: PointIndex) -> MatchResult:
        key = normalize_house_number(row.get("ST_NUM"))
        row.key = key

        candidates = index.candidates(key)
        if len(candidates) == 1:
            return MatchResult(row, MatchStatus.MATCHED, MatchReason.EXACT, point=candidates[0])
        if len(candidates) > 1:
            # The first candidate in document order stands in until someone reviews it.
            return MatchResult(row, MatchStatus.REVIEW, MatchReason.DUPLICATE_KMZ, point=candidates[0])

        number = leading_number(key)
        if number is not None:
            fallback = index.candidates(number)
            if len(fallback) == 1:
                return MatchResult(row, MatchStatus.REVIEW_ADD, MatchReason.NUMERIC_ONLY, point=fallback[0])

        return MatchResult(row, MatchStatus.MISSING, MatchReason.NOT_FOUND)
