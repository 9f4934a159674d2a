"""Per-tract aggregation of point assignments with zero-fill"""

import logging
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from ..exceptions import SchemaError
from ..models import AggregatedCount, AggregationResult, PolygonDataset


logger = logging.getLogger(__name__)


class Aggregator:
    """
    Count (or sum) assigned observations per tract

    The output always covers exactly the tracts of the reference dataset:
    tracts with no observations get an explicit zero instead of being left
    out, so averages and colour scales are not biased towards tracts that
    happened to have events. Unassigned observations are dropped and
    reported in ``unmatched_count``.
    """

    def aggregate(self,
                  assigned: Iterable[Optional[str]],
                  reference_polygons: PolygonDataset,
                  value_field: str = 'count') -> AggregationResult:
        """
        Args:
            assigned: Tract id (or None) per observation, e.g. from SpatialJoinEngine.assign
            reference_polygons: Tracts the result must cover
            value_field: Column name used by ``AggregationResult.to_frame``

        Raises:
            SchemaError: an assignment names a tract that is not in the reference
        """
        assignments = self._clean(assigned)
        unmatched = int(assignments.isna().sum())
        matched = assignments.dropna()

        self._check_known(matched, reference_polygons)

        grouped = matched.value_counts()
        reference_ids = reference_polygons.tract_ids
        counts = grouped.reindex(reference_ids, fill_value=0).astype(int)
        zero_filled = int((~pd.Index(reference_ids).isin(grouped.index)).sum())

        if unmatched:
            logger.info(f"{unmatched} observations could not be assigned to a tract and were dropped")
        logger.debug(
            f"Aggregated {len(matched)} observations into {len(reference_ids)} tracts "
            f"({zero_filled} zero-filled)"
        )

        return AggregationResult(
            counts=[AggregatedCount(tract_id, int(n)) for tract_id, n in counts.items()],
            unmatched_count=unmatched,
            zero_filled=zero_filled,
            value_field=value_field,
            metadata={'reference': reference_polygons.name}
        )

    def aggregate_values(self,
                         assigned: Iterable[Optional[str]],
                         values: Iterable[float],
                         reference_polygons: PolygonDataset,
                         value_field: str = 'value',
                         how: str = 'sum') -> pd.DataFrame:
        """
        Sum (or count non-null) a numeric value per tract, zero-filled

        Returns a DataFrame with the reference id field and ``value_field``,
        one row per reference tract in reference order.
        """
        if how not in ('sum', 'count'):
            raise ValueError(f"Unknown aggregation: {how}")

        assignments = self._clean(assigned)
        values = pd.Series(np.asarray(list(values), dtype=float))
        if len(values) != len(assignments):
            raise ValueError(
                f"Got {len(values)} values for {len(assignments)} assignments"
            )

        frame = pd.DataFrame({'tract_id': assignments.to_numpy(), 'value': values.to_numpy()})
        unmatched = int(frame['tract_id'].isna().sum())
        frame = frame.dropna(subset=['tract_id'])
        self._check_known(frame['tract_id'], reference_polygons)

        grouped = frame.groupby('tract_id')['value'].agg(how)
        result = grouped.reindex(reference_polygons.tract_ids, fill_value=0)

        if unmatched:
            logger.info(f"{unmatched} observations could not be assigned to a tract and were dropped")

        return pd.DataFrame({
            reference_polygons.id_field: reference_polygons.tract_ids,
            value_field: result.to_numpy()
        })

    @staticmethod
    def _clean(assigned: Iterable[Optional[str]]) -> pd.Series:
        series = pd.Series(list(assigned), dtype=object)
        return series.where(series.isna(), series.astype(str).str.strip())

    @staticmethod
    def _check_known(matched: pd.Series, reference_polygons: PolygonDataset) -> None:
        unknown = set(matched.unique()) - set(reference_polygons.tract_ids)
        if unknown:
            raise SchemaError(
                f"Assignments reference tracts missing from {reference_polygons.name}: "
                f"{sorted(unknown)[:10]}",
                field=reference_polygons.id_field
            )


def aggregate(assigned: Iterable[Optional[str]],
              reference_polygons: PolygonDataset) -> AggregationResult:
    """Zero-filled counts per reference tract"""
    return Aggregator().aggregate(assigned, reference_polygons)
