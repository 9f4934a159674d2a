"""Point-in-polygon assignment of incidents to tracts"""

import logging
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd
import geopandas as gpd

from ..exceptions import InvalidInputError, ProjectionMismatchError
from ..models import PolygonDataset
from ..models.validators import DataValidator


logger = logging.getLogger(__name__)

Points = Union[gpd.GeoSeries, gpd.GeoDataFrame]


class SpatialJoinEngine:
    """
    Assign each point to the tract polygon that contains it

    Containment includes the polygon boundary, so a point on an edge
    shared by two tracts touches both; it is then given to the first of
    them in dataset order. Points inside no tract are assigned ``None``.

    Diagnostics from the most recent call are kept on the instance:
    ``last_unmatched_count``, ``last_ambiguous_count`` and
    ``last_ambiguous`` (point index -> every tract that contained it).
    """

    def __init__(self):
        self.last_unmatched_count = 0
        self.last_ambiguous_count = 0
        self.last_ambiguous: Dict[object, List[str]] = {}

    def assign(self, points: Points, polygons: PolygonDataset) -> pd.Series:
        """
        Args:
            points: Point geometries with a CRS; null coordinates must be
                filtered out beforehand
            polygons: Reference tract polygons in the same CRS

        Returns:
            Series of tract ids (or None), one per point, indexed like ``points``

        Raises:
            ProjectionMismatchError: CRS missing on either side or different
            InvalidInputError: NaN, infinite, empty or out-of-range coordinates
        """
        geoms = self._as_geoseries(points)
        self._check_crs(geoms.crs, polygons.crs)
        self._check_coordinates(geoms)

        id_field = polygons.id_field
        n_points = len(geoms)
        assigned = np.full(n_points, None, dtype=object)

        self.last_ambiguous = {}
        self.last_ambiguous_count = 0

        right = polygons.geometry_table()
        right['_poly_pos'] = np.arange(len(right))
        right = right[right.geometry.notna() & ~right.geometry.is_empty]

        if n_points > 0 and len(right) > 0:
            left = gpd.GeoDataFrame(
                {'_point_pos': np.arange(n_points)},
                geometry=geoms.values,
                crs=geoms.crs
            )
            joined = gpd.sjoin(left, right, how='inner', predicate='intersects')
            joined = joined.sort_values(['_point_pos', '_poly_pos'], kind='mergesort')

            hits = joined.groupby('_point_pos').size()
            ambiguous = hits[hits > 1].index
            if len(ambiguous) > 0:
                for pos, group in joined[joined['_point_pos'].isin(ambiguous)].groupby('_point_pos'):
                    self.last_ambiguous[geoms.index[pos]] = group[id_field].tolist()
                self.last_ambiguous_count = len(ambiguous)
                logger.warning(
                    f"{len(ambiguous)} points fall in more than one polygon of {polygons.name}; "
                    f"each was assigned to the first match in dataset order"
                )

            first = joined.drop_duplicates('_point_pos', keep='first')
            assigned[first['_point_pos'].to_numpy()] = first[id_field].to_numpy()

        self.last_unmatched_count = int(sum(a is None for a in assigned))
        if self.last_unmatched_count:
            logger.info(
                f"{self.last_unmatched_count} of {n_points} points are outside every polygon "
                f"of {polygons.name}"
            )

        return pd.Series(assigned, index=geoms.index, name=id_field, dtype=object)

    @staticmethod
    def _as_geoseries(points: Points) -> gpd.GeoSeries:
        if isinstance(points, gpd.GeoDataFrame):
            return points.geometry
        if isinstance(points, gpd.GeoSeries):
            return points
        raise TypeError(f"points must be a GeoSeries or GeoDataFrame, got {type(points).__name__}")

    @staticmethod
    def _check_crs(points_crs, polygons_crs) -> None:
        if points_crs is None or polygons_crs is None or points_crs != polygons_crs:
            raise ProjectionMismatchError(points_crs, polygons_crs)

    @staticmethod
    def _check_coordinates(geoms: gpd.GeoSeries) -> None:
        validated = DataValidator.validate_point_coordinates(geoms)
        invalid = validated[~validated['is_valid']]
        if len(invalid) > 0:
            reasons = invalid['rejection_reason'].value_counts().to_dict()
            raise InvalidInputError(
                f"{len(invalid)} invalid points (first at index {invalid.index[0]!r}): {reasons}"
            )


def assign(points: Points, polygons: PolygonDataset,
           engine: Optional[SpatialJoinEngine] = None) -> pd.Series:
    """Assign points to tracts with a (new or given) SpatialJoinEngine"""
    return (engine or SpatialJoinEngine()).assign(points, polygons)


def tag_points(points: gpd.GeoDataFrame,
               polygons: PolygonDataset,
               field: Optional[str] = None,
               engine: Optional[SpatialJoinEngine] = None) -> gpd.GeoDataFrame:
    """Copy of ``points`` with a column holding the containing tract id"""
    tagged = points.copy()
    tagged[field or polygons.id_field] = assign(points, polygons, engine)
    return tagged
