"""Unit tests for data validators"""

import numpy as np
import geopandas as gpd
from shapely.geometry import Point, Polygon, box

from tractmap.models import PolygonDataset
from tractmap.models.validators import DataValidator


class TestDataValidator:
    """Test data validation functions"""

    def test_validate_point_coordinates(self):
        """Valid, NaN, out-of-range and missing points are flagged"""
        points = gpd.GeoSeries(
            [Point(-75.1, 39.9), Point(np.nan, 39.9), Point(-200.0, 39.9), None],
            crs='EPSG:4326'
        )

        validated = DataValidator.validate_point_coordinates(points)

        assert validated['is_valid'].tolist() == [True, False, False, False]
        assert validated.loc[1, 'rejection_reason'] != ''
        assert validated.loc[2, 'rejection_reason'] == 'Coordinate outside CRS range'
        assert validated.loc[3, 'rejection_reason'].startswith('Missing')
        assert validated.loc[0, 'x'] == -75.1

    def test_projected_coordinates_have_no_range_limit(self):
        points = gpd.GeoSeries([Point(2_700_000, 240_000)], crs='EPSG:2272')

        validated = DataValidator.validate_point_coordinates(points)

        assert validated['is_valid'].all()

    def test_empty_points(self):
        validated = DataValidator.validate_point_coordinates(gpd.GeoSeries([], crs='EPSG:4326'))
        assert len(validated) == 0

    def test_validate_polygon_data(self, three_tracts):
        is_valid, errors = DataValidator.validate_polygon_data(three_tracts)

        assert is_valid
        assert errors == []

    def test_invalid_polygons_reported(self):
        """Self-intersecting polygons and missing CRS are reported"""
        bowtie = Polygon([(0, 0), (1, 1), (1, 0), (0, 1), (0, 0)])
        frame = gpd.GeoDataFrame({
            'GEOID10': ['001', '002'],
            'geometry': [box(0, 0, 1, 1), bowtie]
        })
        dataset = PolygonDataset(frame, 'GEOID10')

        is_valid, errors = DataValidator.validate_polygon_data(dataset)

        assert not is_valid
        assert "Missing CRS" in errors
        assert any('002' in e and 'Invalid' in e for e in errors)

    def test_generate_validation_report(self, three_tracts, homicide_points):
        report = DataValidator.generate_validation_report(homicide_points, three_tracts)

        assert report['total_points'] == 4
        assert report['valid_points'] == 4
        assert report['validation_rate'] == 1.0
        assert report['total_tracts'] == 3
        assert report['polygons_valid']
        assert report['crs_match']
