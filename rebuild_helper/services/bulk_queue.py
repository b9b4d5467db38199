"""Guided placement queue over the rows of one street."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from ..core import MatchResult, ValidationError


@dataclass(slots=True)
class BulkQueue:
    """Cursor over a frozen snapshot of rows that still need a point.

    The queue is built once by :meth:`start` and never re-filtered while it
    runs. ``cursor == len(queue)`` means the queue is exhausted.
    """

    active: bool = False
    queue: tuple[int, ...] = ()
    cursor: int = 0
    street: str = ""

    def start(self, matches: Sequence[MatchResult], street: str | None) -> bool:
        street = (street or "").strip()
        if not street:
            raise ValidationError("Choose a street (ST_NAME) before starting bulk placement.")

        queue = tuple(
            index
            for index, result in enumerate(matches)
            if result.needs_placement and result.row.street == street
        )
        if not queue:
            return False

        self.active = True
        self.queue = queue
        self.cursor = 0
        self.street = street
        return True

    def current_target(self) -> int | None:
        if not self.active or self.cursor >= len(self.queue):
            return None
        return self.queue[self.cursor]

    @property
    def exhausted(self) -> bool:
        return self.active and self.cursor >= len(self.queue)

    def advance(self) -> int | None:
        """Move past the current target and return the next one.

        ``None`` means the queue is exhausted and the caller should stop it.
        """

        if not self.active:
            return None
        self.cursor = min(self.cursor + 1, len(self.queue))
        return self.current_target()

    def skip(self) -> int | None:
        return self.advance()

    def step_back(self) -> int | None:
        if not self.active:
            return None
        self.cursor = max(0, self.cursor - 1)
        return self.current_target()

    def stop(self) -> None:
        self.active = False
        self.queue = ()
        self.cursor = 0
        self.street = ""

    def progress(self) -> tuple[int, int]:
        total = len(self.queue)
        return min(self.cursor + 1, total), total

    def as_dict(self) -> dict:
        position, total = self.progress()
        return {
            "active": self.active,
            "street": self.street,
            "queue": list(self.queue),
            "cursor": self.cursor,
            "position": position,
            "total": total,
            "target": self.current_target(),
        }
