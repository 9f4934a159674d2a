"""Unit tests for synthetic data generation"""

import json
import numpy as np

from tractmap.data import GeographicDataGenerator
from tractmap.models import PolygonDataset


class TestGeographicDataGenerator:
    """Test synthetic tract and incident generation"""

    def test_tract_grid(self, generator):
        tracts = generator.generate_tract_geometries(rows=2, cols=3)

        assert len(tracts) == 6
        assert tracts['GEOID10'].tolist()[:2] == ['42101000100', '42101000200']
        assert tracts['GEOID10'].is_unique
        assert tracts.crs == 'EPSG:4326'
        assert tracts.geometry.is_valid.all()

    def test_tracts_share_edges(self, generator):
        """Neighbouring tracts touch without overlapping"""
        tracts = generator.generate_tract_geometries(rows=1, cols=2)

        first, second = tracts.geometry.iloc[0], tracts.geometry.iloc[1]
        assert first.touches(second)
        assert first.intersection(second).area == 0

    def test_shuffled_tracts_keep_ids(self, generator):
        ordered = generator.generate_tract_geometries(rows=2, cols=2)
        shuffled = GeographicDataGenerator(seed=1).generate_tract_geometries(rows=2, cols=2, shuffle=True)

        assert sorted(shuffled['GEOID10']) == sorted(ordered['GEOID10'])

    def test_incidents(self, generator):
        tracts = generator.generate_tract_geometries()

        incidents = generator.generate_incidents(tracts, num_incidents=300, missing_share=0.1)

        assert len(incidents) == 300
        assert list(incidents.columns) == ['objectid', 'text_general_code', 'point_x', 'point_y']
        assert incidents['point_x'].isna().any()
        assert set(incidents['text_general_code']) <= {
            'Thefts', 'Other Assaults', 'Vandalism/Criminal Mischief', 'Homicide - Criminal'
        }

    def test_tract_statistics(self, generator):
        tracts = generator.generate_tract_geometries(rows=5, cols=5)

        stats = generator.generate_tract_statistics(tracts, coverage=1.0)

        assert len(stats) == 25
        assert set(stats['census_tract']) == set(tracts['GEOID10'])
        assert (stats['num_bll_5plus'] <= stats['num_screen']).all()

    def test_reproducible(self):
        first = GeographicDataGenerator(seed=7).generate_complete_geographic_data(2, 2, 40)
        second = GeographicDataGenerator(seed=7).generate_complete_geographic_data(2, 2, 40)

        np.testing.assert_array_equal(first['incidents']['point_x'].to_numpy(),
                                      second['incidents']['point_x'].to_numpy())

    def test_as_dataset(self, generator, synthetic_data):
        dataset = generator.as_dataset(synthetic_data['tracts'])

        assert isinstance(dataset, PolygonDataset)
        assert dataset.id_field == 'GEOID10'

    def test_export_to_files(self, synthetic_files):
        assert set(synthetic_files) == {'tracts', 'incidents', 'tract_stats'}
        for path in synthetic_files.values():
            assert path.exists()

        metadata = json.loads((synthetic_files['tracts'].parent / 'metadata.json').read_text())
        assert metadata['seed'] == 42
        assert metadata['num_tracts'] == 12
