"""Statistics shown once a round is revealed."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .estimator import snap_to_scale
from .models import Estimate


@dataclass
class EstimateSummary:
    """Aggregate view of a round's estimates.

    Unknown cards are left out of every numeric figure and counted in
    ``unknown_count``.
    """

    count: int = 0
    average: float = 0.0
    nearest_card: int | None = None
    agreement: int = 0  # percent of numeric votes on the consensus value
    consensus: int | None = None
    distribution: dict[int, int] = field(default_factory=dict)
    unknown_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "count": self.count,
            "average": round(self.average, 1),
            "nearest_card": self.nearest_card,
            "agreement": self.agreement,
            "consensus": self.consensus,
            "distribution": {str(k): v for k, v in self.distribution.items()},
            "unknown_count": self.unknown_count,
        }


def summarize(estimates: Mapping[str, Estimate] | Iterable[Estimate]) -> EstimateSummary:
    """
    Summarize a round.

    The consensus is the most frequent value; on a tie, the value that
    reached the top count first (in vote order) wins.

    Args:
        estimates: Estimates keyed by participant id, or any iterable of them

    Returns:
        EstimateSummary (all zero when nobody cast a numeric vote)
    """
    values = estimates.values() if isinstance(estimates, Mapping) else estimates

    counts: dict[int, int] = {}
    summary = EstimateSummary()
    top = 0
    total = 0

    for estimate in values:
        points = estimate.value.points
        if points is None:
            summary.unknown_count += 1
            continue
        counts[points] = counts.get(points, 0) + 1
        if counts[points] > top:
            top = counts[points]
            summary.consensus = points
        total += points
        summary.count += 1

    if summary.count == 0:
        return summary

    summary.average = total / summary.count
    summary.nearest_card = snap_to_scale(summary.average)
    summary.agreement = round(top / summary.count * 100)
    summary.distribution = dict(sorted(counts.items()))
    return summary
