"""Unit tests for run configuration loading"""

import json
import pytest
import yaml
from pathlib import Path

from tractmap.config import load_config, parse_config, parse_filters
from tractmap.exceptions import SchemaError
from tractmap.models import RowFilter


MINIMAL = {
    'polygons': {'source': 'tracts.geojson', 'id_field': 'GEOID10'}
}

FULL = {
    'polygons': {'source': 'tracts.geojson', 'id_field': 'GEOID10', 'crs': 'EPSG:2272'},
    'points': [{
        'name': 'homicides',
        'source': 'incidents.csv',
        'x_field': 'point_x',
        'y_field': 'point_y',
        'crs': 'EPSG:4326',
        'count_field': 'num_homicides',
        'filters': [
            {'equals': {'field': 'text_general_code', 'value': 'Homicide - Criminal'}},
            {'not_null': ['point_x', 'point_y']}
        ]
    }],
    'tables': [{
        'name': 'lead',
        'source': 'https://example.org/lead.csv',
        'key_field': 'census_tract',
        'dtype': {'census_tract': 'str'},
        'fields': ['num_bll_5plus', 'num_screen']
    }],
    'rates': [{'numerator': 'num_bll_5plus', 'denominator': 'num_screen', 'out_field': 'pct', 'per': 100}],
    'render': {
        'fill_field': 'num_homicides',
        'figsize': [8, 6],
        'layers': [{'name': 'Homicides', 'fill_field': 'num_homicides', 'palette': 'Reds'}]
    },
    'output': {'directory': 'out', 'static_map': 'map.png'},
    'max_retries': 4
}


class TestRunConfig:
    """Test parsing of run configuration"""

    def test_minimal(self, tmp_path):
        config = parse_config(MINIMAL, base_dir=tmp_path)

        assert config.polygons.id_field == 'GEOID10'
        assert config.points == []
        assert config.render is None
        assert config.output.geojson == 'merged_tracts.geojson'
        assert config.resolve('tracts.geojson') == str(tmp_path / 'tracts.geojson')

    def test_full(self, tmp_path):
        config = parse_config(FULL, base_dir=tmp_path)

        assert config.points[0].filters == [
            RowFilter.equals('text_general_code', 'Homicide - Criminal'),
            RowFilter.not_null('point_x', 'point_y')
        ]
        assert config.tables[0].mode == 'left'
        assert config.tables[0].fields == ['num_bll_5plus', 'num_screen']
        assert config.rates[0].per == 100
        assert config.render.figsize == (8, 6)
        assert config.render.layers[0].palette == 'Reds'
        assert config.output.static_map == 'map.png'
        assert config.max_retries == 4

    def test_urls_are_not_resolved(self, tmp_path):
        config = parse_config(FULL, base_dir=tmp_path)
        assert config.resolve('https://example.org/lead.csv') == 'https://example.org/lead.csv'

    def test_unknown_key(self):
        with pytest.raises(SchemaError) as exc_info:
            parse_config({**MINIMAL, 'polygon': {}})
        assert 'polygons' in exc_info.value.available

    def test_unknown_nested_key(self):
        data = {'polygons': {'source': 'a', 'id_field': 'b', 'idfield': 'c'}}
        with pytest.raises(SchemaError):
            parse_config(data)

    def test_missing_required_key(self):
        with pytest.raises(SchemaError):
            parse_config({'polygons': {'source': 'a'}})
        with pytest.raises(SchemaError):
            parse_config({})

    def test_parse_filters(self):
        filters = parse_filters([{'isin': {'field': 'code', 'values': ['a', 'b']}},
                                 {'not_null': 'x'}], 'points[0]')

        assert filters == [RowFilter.isin('code', ['a', 'b']), RowFilter.not_null('x')]

        with pytest.raises(SchemaError):
            parse_filters([{'like': {'field': 'code'}}], 'points[0]')
        with pytest.raises(SchemaError):
            parse_filters([{'equals': {}, 'isin': {}}], 'points[0]')

    def test_load_yaml(self, tmp_path):
        path = tmp_path / 'run.yaml'
        path.write_text(yaml.safe_dump(FULL))

        config = load_config(path)

        assert config.base_dir == tmp_path
        assert config.points[0].count_field == 'num_homicides'

    def test_load_json(self, tmp_path):
        path = tmp_path / 'run.json'
        path.write_text(json.dumps(MINIMAL))

        config = load_config(path)

        assert config.polygons.source == 'tracts.geojson'

    def test_example_config_parses(self):
        example = Path(__file__).resolve().parents[2] / 'examples' / 'philly.yaml'

        config = load_config(example)

        assert config.polygons.id_field
        assert config.render is not None
