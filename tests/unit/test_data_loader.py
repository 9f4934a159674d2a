"""Unit tests for data loaders and transformers"""

import pytest
from pathlib import Path
from unittest import mock
import numpy as np
import pandas as pd
import requests

from tractmap.data import DataTransformer, PolygonLoader, TabularLoader
from tractmap.data.data_loader import is_url
from tractmap.exceptions import DataSourceError, SchemaError
from tractmap.models import RowFilter, TabularDataset


def _session_returning(response):
    session = mock.Mock(spec=requests.Session)
    session.get.return_value = response
    return session


def _http_error_response(status):
    response = mock.Mock()
    response.status_code = status
    response.raise_for_status.side_effect = requests.exceptions.HTTPError(
        f"{status} error", response=response
    )
    return response


class TestPolygonLoader:
    """Test polygon loading"""

    def test_load_geojson(self, synthetic_files, synthetic_data):
        tracts = PolygonLoader().load(synthetic_files['tracts'], 'GEOID10')

        assert len(tracts) == 12
        assert tracts.tract_ids == synthetic_data['tracts']['GEOID10'].tolist()
        assert tracts.crs.is_geographic
        assert tracts.name == 'tracts'

    def test_load_shapefile_directory(self, synthetic_data, tmp_path):
        shp_dir = tmp_path / 'tracts_shp'
        shp_dir.mkdir()
        synthetic_data['tracts'].to_file(shp_dir / 'tracts.shp')

        tracts = PolygonLoader().load(shp_dir, 'GEOID10')

        assert len(tracts) == 12
        assert tracts.tract_ids[0] == '42101000100'

    def test_directory_without_shapefile(self, tmp_path):
        with pytest.raises(DataSourceError) as exc_info:
            PolygonLoader().load(tmp_path, 'GEOID10')
        assert not exc_info.value.retryable

    def test_missing_file_is_fatal(self, tmp_path):
        with pytest.raises(DataSourceError) as exc_info:
            PolygonLoader().load(tmp_path / 'nope.geojson', 'GEOID10')
        assert not exc_info.value.retryable

    def test_unreadable_file(self, tmp_path):
        bad = tmp_path / 'bad.geojson'
        bad.write_text('this is not geojson')

        with pytest.raises(DataSourceError):
            PolygonLoader().load(bad, 'GEOID10')

    def test_missing_id_field(self, synthetic_files):
        with pytest.raises(SchemaError):
            PolygonLoader().load(synthetic_files['tracts'], 'GEOID')


class TestTabularLoader:
    """Test CSV loading"""

    def test_load_with_filters(self, synthetic_files, synthetic_data):
        incidents = synthetic_data['incidents']
        expected = incidents[
            (incidents['text_general_code'] == 'Homicide - Criminal') &
            incidents['point_x'].notna()
        ]

        table = TabularLoader().load(
            synthetic_files['incidents'],
            filters=[RowFilter.equals('text_general_code', 'Homicide - Criminal'),
                     RowFilter.not_null('point_x', 'point_y')]
        )

        assert len(table) == len(expected)
        assert table.frame['objectid'].tolist() == expected['objectid'].tolist()

    def test_dtype_keeps_ids_as_text(self, tmp_path):
        path = tmp_path / 'stats.csv'
        path.write_text('census_tract,value\n000100,1\n000200,2\n')

        table = TabularLoader().load(path, dtype={'census_tract': str})

        assert table.frame['census_tract'].tolist() == ['000100', '000200']

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'empty.csv'
        path.write_text('')

        with pytest.raises(DataSourceError) as exc_info:
            TabularLoader().load(path)
        assert not exc_info.value.retryable

    def test_download(self, tmp_path):
        response = mock.Mock()
        response.raise_for_status.return_value = None
        response.iter_content.return_value = [b'GEOID,value\n', b'42101000100,5\n']
        session = _session_returning(response)

        loader = TabularLoader(session=session, timeout=5)
        table = loader.load('https://example.org/data/stats.csv', dtype={'GEOID': str})

        assert table.frame['GEOID'].tolist() == ['42101000100']
        assert table.name == 'stats'
        session.get.assert_called_once_with('https://example.org/data/stats.csv',
                                            timeout=5, stream=True)
        loader.cleanup()

    @pytest.mark.parametrize('status,retryable', [
        (503, True), (429, True), (500, True), (404, False), (403, False)
    ])
    def test_http_errors(self, status, retryable):
        loader = TabularLoader(session=_session_returning(_http_error_response(status)))

        with pytest.raises(DataSourceError) as exc_info:
            loader.load('https://example.org/stats.csv')

        assert exc_info.value.retryable is retryable
        assert exc_info.value.source == 'https://example.org/stats.csv'
        loader.cleanup()

    def test_connection_error_is_retryable(self):
        session = mock.Mock(spec=requests.Session)
        session.get.side_effect = requests.exceptions.ConnectionError("reset")
        loader = TabularLoader(session=session)

        with pytest.raises(DataSourceError) as exc_info:
            loader.load('http://example.org/stats.csv')

        assert exc_info.value.retryable
        loader.cleanup()

    @pytest.mark.parametrize('error', [
        requests.exceptions.ChunkedEncodingError("connection broken mid-stream"),
        requests.exceptions.ContentDecodingError("bad gzip stream")
    ])
    def test_interrupted_download_is_retryable_and_cleaned_up(self, error):
        def broken_stream(chunk_size):
            yield b'GEOID,value\n'
            raise error

        response = mock.Mock()
        response.raise_for_status.return_value = None
        response.iter_content.side_effect = broken_stream
        loader = TabularLoader(session=_session_returning(response))

        with pytest.raises(DataSourceError) as exc_info:
            loader.load('https://example.org/data/stats.csv')

        assert exc_info.value.retryable
        assert list(Path(loader._download_dir.name).iterdir()) == []
        loader.cleanup()

    def test_is_url(self):
        assert is_url('https://example.org/a.zip')
        assert not is_url('/tmp/a.zip')
        assert not is_url('data/a.csv')


class TestDataTransformer:
    """Test data transformations"""

    def test_points_from_table(self):
        table = TabularDataset(pd.DataFrame({
            'objectid': [1, 2],
            'point_x': [-75.1, 'bad'],
            'point_y': [39.9, 40.0]
        }))

        points = DataTransformer.points_from_table(table, 'point_x', 'point_y', 'EPSG:4326')

        assert points.crs == 'EPSG:4326'
        assert points.geometry.iloc[0].x == -75.1
        assert len(points) == 2
        assert points['objectid'].tolist() == [1, 2]

    def test_points_from_table_missing_field(self):
        table = TabularDataset(pd.DataFrame({'lon': [1.0], 'lat': [2.0]}))

        with pytest.raises(SchemaError):
            DataTransformer.points_from_table(table, 'point_x', 'point_y', 'EPSG:4326')

    def test_rate(self, three_tracts):
        attrs = three_tracts.attribute_table()
        attrs['cases'] = [3, 5, 1]
        attrs['population'] = [1500, 0, np.nan]
        dataset = three_tracts.with_attributes(attrs)

        result = DataTransformer.rate(dataset, 'cases', 'population', 'per_1000')

        rates = result.attribute_table()['per_1000'].tolist()
        assert rates[0] == pytest.approx(2.0)
        assert np.isnan(rates[1])
        assert np.isnan(rates[2])
        assert result.tract_ids == three_tracts.tract_ids

    def test_normalize_ids(self):
        table = TabularDataset(pd.DataFrame({'tract': [100, 20100, None]}))

        result = DataTransformer.normalize_ids(table, 'tract', 6)

        values = result.frame['tract'].tolist()
        assert values[:2] == ['000100', '020100']
        assert pd.isna(values[2])
