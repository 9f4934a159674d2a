"""Pytest configuration and fixtures"""

import matplotlib
matplotlib.use('Agg')

import pytest
import pandas as pd
import numpy as np
import geopandas as gpd
from shapely.geometry import Point, box

from tractmap.data import GeographicDataGenerator
from tractmap.models import PolygonDataset, TabularDataset


PROJECTED_CRS = 'EPSG:3857'


def make_tracts(order=('003', '001', '002'), crs=PROJECTED_CRS, id_field='GEOID10'):
    """Three unit squares side by side: 001 at x 0-1, 002 at x 1-2, 003 at x 2-3"""
    squares = {
        '001': box(0, 0, 1, 1),
        '002': box(1, 0, 2, 1),
        '003': box(2, 0, 3, 1),
    }
    frame = gpd.GeoDataFrame(
        {
            id_field: list(order),
            'NAMELSAD10': [f"Census Tract {int(t)}" for t in order],
            'geometry': [squares[t] for t in order],
        },
        geometry='geometry',
        crs=crs
    )
    return PolygonDataset(frame, id_field, name='test_tracts')


def make_points(coords, crs=PROJECTED_CRS, index=None):
    return gpd.GeoSeries([Point(x, y) for x, y in coords], crs=crs, index=index)


@pytest.fixture
def three_tracts():
    """Tracts 001-003 stored in the order 003, 001, 002"""
    return make_tracts()


@pytest.fixture
def sorted_tracts():
    return make_tracts(order=('001', '002', '003'))


@pytest.fixture
def homicide_points():
    """Two points in 001, one in 003, one outside every tract"""
    return make_points([(0.5, 0.5), (0.25, 0.75), (2.5, 0.5), (10.0, 10.0)])


@pytest.fixture
def tract_stats():
    """Tract-level table in a different order than the polygons, missing 002"""
    return TabularDataset(pd.DataFrame({
        'census_tract': ['001', '003'],
        'num_bll_5plus': [4, 9],
        'num_screen': [100, 300],
    }), name='tract_stats')


@pytest.fixture
def generator():
    return GeographicDataGenerator(seed=42)


@pytest.fixture
def synthetic_data(generator):
    """Small synthetic tract grid with incidents and tract statistics"""
    return generator.generate_complete_geographic_data(rows=3, cols=4, num_incidents=200)


@pytest.fixture
def synthetic_files(generator, synthetic_data, tmp_path):
    """Synthetic data written to disk"""
    return generator.export_to_files(synthetic_data, tmp_path / 'data')


@pytest.fixture
def random_seed():
    """Set random seed for reproducibility"""
    np.random.seed(42)
    return 42
