from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple


ScoreRow = Tuple[Hashable, int]


@dataclass(frozen=True)
class ScoredEntry:
    subject_id: Hashable
    subject_label: str
    points: int


@dataclass(frozen=True)
class RankedEntry:
    subject_id: Hashable
    subject_label: str
    points: int
    rank: Optional[int]

    def as_board_row(self) -> dict:
        return {"team": self.subject_label, "points": self.points, "rank": self.rank}


def compute_standings(entries: Sequence[ScoredEntry]) -> List[RankedEntry]:
    """
    Dense competition ranking by points, highest first.
    Equal points share a rank; the next lower score gets rank + 1 (50, 50, 30 -> 1, 1, 2).
    Ties keep their input order.
    """
    ordered = sorted(entries, key=lambda e: -e.points)

    ranked: List[RankedEntry] = []
    current_rank = 0
    last_points: Optional[int] = None
    for entry in ordered:
        if last_points is None or entry.points != last_points:
            current_rank += 1
            last_points = entry.points
        ranked.append(
            RankedEntry(
                subject_id=entry.subject_id,
                subject_label=entry.subject_label,
                points=entry.points,
                rank=current_rank,
            )
        )
    return ranked


def aggregate_points(
    rows: Iterable[ScoreRow],
    labels: Optional[Mapping[Hashable, str]] = None,
) -> List[ScoredEntry]:
    """
    Sum points per subject. One entry per subject seen in rows, in first-seen order.
    """
    totals: Dict[Hashable, int] = {}
    for subject_id, points in rows:
        totals[subject_id] = totals.get(subject_id, 0) + int(points)

    labels = labels or {}
    return [
        ScoredEntry(subject_id=subject_id, subject_label=labels.get(subject_id, str(subject_id)), points=points)
        for subject_id, points in totals.items()
    ]
