"""Generate synthetic tract and incident data for tutorials and tests"""

import json
import logging
from pathlib import Path
from typing import Dict, Tuple, Union

import numpy as np
import pandas as pd
import geopandas as gpd
from shapely.geometry import box

from ..models import PolygonDataset


logger = logging.getLogger(__name__)


class GeographicDataGenerator:
    """Generate a grid of synthetic census tracts with point and tract-level data"""

    def __init__(self, seed: int = 42, crs: str = 'EPSG:4326'):
        self.seed = seed
        self.crs = crs
        self.rng = np.random.RandomState(seed)

    def generate_tract_geometries(self,
                                  rows: int = 4,
                                  cols: int = 5,
                                  bounds: Tuple[float, float, float, float] = (-75.28, 39.87, -74.96, 40.14),
                                  state: str = '42',
                                  county: str = '101',
                                  shuffle: bool = False) -> gpd.GeoDataFrame:
        """
        Generate a rows x cols partition of rectangular tracts

        Neighbouring tracts share edges exactly, like a real tract layer.

        Args:
            rows: Number of tract rows
            cols: Number of tract columns
            bounds: (min_lon, min_lat, max_lon, max_lat), Philadelphia by default
            state: Two-digit state FIPS code
            county: Three-digit county FIPS code
            shuffle: Write tracts in random order instead of id order
        """
        min_x, min_y, max_x, max_y = bounds
        width = (max_x - min_x) / cols
        height = (max_y - min_y) / rows

        tracts = []
        for r in range(rows):
            for c in range(cols):
                tract_code = f"{(r * cols + c + 1) * 100:06d}"
                geometry = box(
                    min_x + c * width,
                    min_y + r * height,
                    min_x + (c + 1) * width,
                    min_y + (r + 1) * height
                )
                tracts.append({
                    'GEOID10': f"{state}{county}{tract_code}",
                    'STATEFP10': state,
                    'COUNTYFP10': county,
                    'TRACTCE10': tract_code,
                    'NAMELSAD10': f"Census Tract {int(tract_code) / 100:g}",
                    'geometry': geometry
                })

        gdf = gpd.GeoDataFrame(tracts, geometry='geometry', crs=self.crs)
        if shuffle:
            gdf = gdf.sample(frac=1.0, random_state=self.rng).reset_index(drop=True)
        return gdf

    def generate_incidents(self,
                           tract_gdf: gpd.GeoDataFrame,
                           num_incidents: int = 500,
                           outside_share: float = 0.02,
                           missing_share: float = 0.01,
                           categories: Dict[str, float] = None) -> pd.DataFrame:
        """
        Generate point incidents (crime reports) with lon/lat columns

        A share of incidents falls outside the tract layer and a share has
        no coordinates, mirroring real incident feeds.
        """
        if categories is None:
            categories = {
                'Thefts': 0.45,
                'Other Assaults': 0.25,
                'Vandalism/Criminal Mischief': 0.2,
                'Homicide - Criminal': 0.1
            }

        min_x, min_y, max_x, max_y = tract_gdf.total_bounds
        span_x = max_x - min_x
        span_y = max_y - min_y

        # Skew density towards a few hot spots
        n_hot = max(1, len(tract_gdf) // 5)
        hot_x = self.rng.uniform(min_x, max_x, n_hot)
        hot_y = self.rng.uniform(min_y, max_y, n_hot)

        xs = np.empty(num_incidents)
        ys = np.empty(num_incidents)
        for i in range(num_incidents):
            if self.rng.uniform() < 0.6:
                h = self.rng.randint(n_hot)
                xs[i] = np.clip(self.rng.normal(hot_x[h], span_x * 0.05), min_x, max_x)
                ys[i] = np.clip(self.rng.normal(hot_y[h], span_y * 0.05), min_y, max_y)
            else:
                xs[i] = self.rng.uniform(min_x, max_x)
                ys[i] = self.rng.uniform(min_y, max_y)

        outside = self.rng.uniform(size=num_incidents) < outside_share
        xs[outside] = max_x + self.rng.uniform(0.01, 0.1, outside.sum()) * span_x
        missing = self.rng.uniform(size=num_incidents) < missing_share

        names = list(categories.keys())
        probs = np.array(list(categories.values()), dtype=float)
        probs /= probs.sum()

        df = pd.DataFrame({
            'objectid': np.arange(1, num_incidents + 1),
            'text_general_code': self.rng.choice(names, size=num_incidents, p=probs),
            'point_x': xs,
            'point_y': ys
        })
        df.loc[missing, ['point_x', 'point_y']] = np.nan
        return df

    def generate_tract_statistics(self, tract_gdf: gpd.GeoDataFrame,
                                  coverage: float = 0.9) -> pd.DataFrame:
        """
        Generate tract-level tabular data (population, poverty, lead tests)

        Only ``coverage`` of the tracts get a row, and rows come back in
        random order, so joins have something to get wrong.
        """
        stats = []
        for geoid in tract_gdf['GEOID10']:
            if self.rng.uniform() > coverage:
                continue
            population = int(self.rng.randint(800, 8000))
            tests = int(self.rng.randint(20, 400))
            stats.append({
                'census_tract': geoid,
                'population': population,
                'poverty_rate': round(float(np.clip(self.rng.beta(2, 6), 0, 1)) * 100, 1),
                'num_bll_5plus': int(self.rng.binomial(tests, 0.08)),
                'num_screen': tests
            })

        df = pd.DataFrame(stats)
        return df.sample(frac=1.0, random_state=self.rng).reset_index(drop=True)

    def generate_complete_geographic_data(self,
                                          rows: int = 4,
                                          cols: int = 5,
                                          num_incidents: int = 500) -> Dict[str, object]:
        """
        Generate a complete tutorial dataset

        Returns dict with:
        - 'tracts': GeoDataFrame of tract geometries
        - 'incidents': DataFrame of point incidents
        - 'tract_stats': DataFrame of tract-level statistics keyed by GEOID
        """
        logger.info(f"Generating {rows * cols} tracts and {num_incidents} incidents")
        tract_gdf = self.generate_tract_geometries(rows, cols)
        return {
            'tracts': tract_gdf,
            'incidents': self.generate_incidents(tract_gdf, num_incidents),
            'tract_stats': self.generate_tract_statistics(tract_gdf)
        }

    def as_dataset(self, tract_gdf: gpd.GeoDataFrame) -> PolygonDataset:
        return PolygonDataset(tract_gdf, 'GEOID10', name='synthetic_tracts')

    def export_to_files(self,
                        geographic_data: Dict[str, object],
                        output_dir: Union[str, Path]) -> Dict[str, Path]:
        """Export generated data as GeoJSON and CSV files"""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        paths = {
            'tracts': output_dir / 'tracts.geojson',
            'incidents': output_dir / 'incidents.csv',
            'tract_stats': output_dir / 'tract_stats.csv'
        }
        geographic_data['tracts'].to_file(paths['tracts'], driver='GeoJSON')
        geographic_data['incidents'].to_csv(paths['incidents'], index=False)
        geographic_data['tract_stats'].to_csv(paths['tract_stats'], index=False)

        with open(output_dir / 'metadata.json', 'w') as f:
            json.dump({
                'seed': self.seed,
                'crs': self.crs,
                'num_tracts': len(geographic_data['tracts']),
                'num_incidents': len(geographic_data['incidents'])
            }, f, indent=2)

        logger.info(f"Geographic data exported to {output_dir}/")
        return paths
