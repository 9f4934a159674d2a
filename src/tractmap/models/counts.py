"""Aggregation result models"""

from dataclasses import dataclass, field
from typing import Dict, List
import pandas as pd


@dataclass(frozen=True)
class AggregatedCount:
    """Number of observations assigned to one tract"""
    tract_id: str
    count: int

    def __post_init__(self):
        if self.count < 0:
            raise ValueError(f"Negative count for tract {self.tract_id}: {self.count}")


@dataclass
class AggregationResult:
    """
    Zero-filled per-tract counts plus data-quality diagnostics

    ``counts`` holds exactly one entry per reference tract, in reference
    order. ``unmatched_count`` is the number of points that fell outside
    every tract; it is informational and never counted against a tract.
    """
    counts: List[AggregatedCount]
    unmatched_count: int = 0
    zero_filled: int = 0
    value_field: str = 'count'
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(c.count for c in self.counts)

    @property
    def tract_ids(self) -> List[str]:
        return [c.tract_id for c in self.counts]

    def as_dict(self) -> Dict[str, int]:
        return {c.tract_id: c.count for c in self.counts}

    def to_frame(self, count_field: str = None, id_field: str = 'tract_id') -> pd.DataFrame:
        """Two-column table (id, count) ready for an attribute merge"""
        count_field = count_field or self.value_field
        return pd.DataFrame({
            id_field: [c.tract_id for c in self.counts],
            count_field: [c.count for c in self.counts]
        })
