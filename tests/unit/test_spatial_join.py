"""Unit tests for point-in-polygon assignment"""

import pytest
import numpy as np
import pandas as pd
import geopandas as gpd
from shapely.geometry import Point, Polygon

from tractmap.exceptions import InvalidInputError, ProjectionMismatchError
from tractmap.models import PolygonDataset
from tractmap.spatial import SpatialJoinEngine, assign, tag_points

from conftest import make_points, make_tracts


class TestSpatialJoinEngine:
    """Test SpatialJoinEngine.assign"""

    def test_one_assignment_per_point(self, three_tracts, homicide_points):
        """Output is aligned with the input points"""
        engine = SpatialJoinEngine()

        result = engine.assign(homicide_points, three_tracts)

        assert len(result) == len(homicide_points)
        assert result.tolist() == ['001', '001', '003', None]
        assert result.name == 'GEOID10'
        assert engine.last_unmatched_count == 1
        assert engine.last_ambiguous_count == 0

    def test_index_is_preserved(self, three_tracts):
        points = make_points([(2.5, 0.5), (0.5, 0.5)], index=[17, 4])

        result = assign(points, three_tracts)

        assert result.index.tolist() == [17, 4]
        assert result.loc[17] == '003'
        assert result.loc[4] == '001'

    def test_accepts_geodataframe(self, three_tracts):
        points = gpd.GeoDataFrame(
            {'objectid': [1, 2]},
            geometry=[Point(1.5, 0.5), Point(0.5, 0.5)],
            crs='EPSG:3857'
        )
        assert assign(points, three_tracts).tolist() == ['002', '001']

    def test_rejects_plain_list(self, three_tracts):
        with pytest.raises(TypeError):
            assign([Point(0.5, 0.5)], three_tracts)

    def test_shared_edge_goes_to_first_polygon_in_dataset_order(self):
        """A point on a shared boundary is assigned deterministically"""
        point = make_points([(1.0, 0.5)])
        forward = make_tracts(order=('001', '002', '003'))
        backward = make_tracts(order=('002', '001', '003'))

        engine = SpatialJoinEngine()
        assert engine.assign(point, forward).tolist() == ['001']
        assert engine.last_ambiguous_count == 1
        assert engine.last_ambiguous == {0: ['001', '002']}

        assert engine.assign(point, backward).tolist() == ['002']
        assert engine.last_ambiguous == {0: ['002', '001']}

    def test_repeated_runs_are_identical(self, three_tracts):
        points = make_points([(1.0, 0.5), (2.0, 1.0), (0.0, 0.0), (3.0, 0.5)])

        first = assign(points, three_tracts)
        second = assign(points, three_tracts)

        assert first.tolist() == second.tolist()

    def test_outer_boundary_is_inside(self, three_tracts):
        points = make_points([(0.0, 0.5), (3.0, 1.0), (3.0001, 0.5)])
        assert assign(points, three_tracts).tolist() == ['001', '003', None]

    def test_point_in_hole_is_unmatched(self):
        shell = [(0, 0), (10, 0), (10, 10), (0, 10)]
        hole = [(4, 4), (6, 4), (6, 6), (4, 6)]
        frame = gpd.GeoDataFrame(
            {'tract': ['ring'], 'geometry': [Polygon(shell, [hole])]},
            crs='EPSG:3857'
        )
        polygons = PolygonDataset(frame, 'tract')

        points = make_points([(5, 5), (1, 1)])

        assert assign(points, polygons).tolist() == [None, 'ring']

    def test_no_points(self, three_tracts):
        result = assign(make_points([]), three_tracts)
        assert len(result) == 0

    def test_no_polygons(self):
        empty = PolygonDataset.from_records([], id_field='GEOID10', crs='EPSG:3857')
        engine = SpatialJoinEngine()

        result = engine.assign(make_points([(0.5, 0.5)]), empty)

        assert result.tolist() == [None]
        assert engine.last_unmatched_count == 1

    def test_crs_mismatch(self, three_tracts):
        points = make_points([(0.5, 0.5)], crs='EPSG:4326')

        with pytest.raises(ProjectionMismatchError) as exc_info:
            assign(points, three_tracts)
        assert exc_info.value.polygons_crs == three_tracts.crs

    def test_missing_crs(self, three_tracts):
        points = gpd.GeoSeries([Point(0.5, 0.5)])

        with pytest.raises(ProjectionMismatchError):
            assign(points, three_tracts)

    def test_nan_coordinates(self, three_tracts):
        points = make_points([(0.5, 0.5), (np.nan, np.nan)])

        with pytest.raises(InvalidInputError):
            assign(points, three_tracts)

    def test_out_of_range_geographic_coordinates(self):
        tracts = make_tracts(crs='EPSG:4326')
        points = make_points([(0.5, 0.5), (0.5, 95.0)], crs='EPSG:4326')

        with pytest.raises(InvalidInputError):
            assign(points, tracts)

    def test_tag_points(self, three_tracts):
        points = gpd.GeoDataFrame(
            {'objectid': [1, 2]},
            geometry=[Point(2.5, 0.5), Point(5.0, 5.0)],
            crs='EPSG:3857'
        )

        tagged = tag_points(points, three_tracts, field='tract')

        assert tagged['tract'].tolist() == ['003', None]
        assert 'tract' not in points.columns
        assert isinstance(tagged, pd.DataFrame)
