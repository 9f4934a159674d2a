"""Data validation functions"""

import pandas as pd
import numpy as np
import geopandas as gpd
from typing import List, Tuple

from .geography import PolygonDataset


class DataValidator:
    """Centralized data validation"""

    # Valid coordinate range for geographic (lon/lat) CRSs
    MAX_LONGITUDE = 180.0
    MAX_LATITUDE = 90.0

    @classmethod
    def validate_point_coordinates(cls, points: gpd.GeoSeries) -> pd.DataFrame:
        """
        Check point geometries and add validation flags

        Returns DataFrame indexed like ``points`` with x, y, validity flags
        and a rejection reason for each point
        """
        df = pd.DataFrame(index=points.index)
        is_point = ~points.isna() & (points.geom_type == 'Point')
        df['valid_geometry'] = is_point & ~points.is_empty.fillna(True)

        x = np.full(len(points), np.nan)
        y = np.full(len(points), np.nan)
        ok = df['valid_geometry'].to_numpy()
        if ok.any():
            x[ok] = points[ok].x.to_numpy()
            y[ok] = points[ok].y.to_numpy()
        df['x'] = x
        df['y'] = y

        df['valid_numeric'] = np.isfinite(df['x']) & np.isfinite(df['y'])

        crs = points.crs
        if crs is not None and crs.is_geographic:
            df['valid_range'] = (
                (df['x'].abs() <= cls.MAX_LONGITUDE) &
                (df['y'].abs() <= cls.MAX_LATITUDE)
            )
        else:
            df['valid_range'] = True

        df['is_valid'] = df['valid_geometry'] & df['valid_numeric'] & df['valid_range']

        df['rejection_reason'] = ''
        df.loc[~df['valid_range'], 'rejection_reason'] = 'Coordinate outside CRS range'
        df.loc[~df['valid_numeric'], 'rejection_reason'] = 'Non-numeric coordinate (NaN or infinite)'
        df.loc[~df['valid_geometry'], 'rejection_reason'] = 'Missing, empty or non-point geometry'

        return df

    @classmethod
    def validate_polygon_data(cls, polygons: PolygonDataset) -> Tuple[bool, List[str]]:
        """Validate tract geographic data"""
        errors = []
        frame = polygons.frame

        if polygons.crs is None:
            errors.append("Missing CRS")

        if frame.geometry.isna().any():
            errors.append(
                f"Missing geometries for tracts: "
                f"{frame.loc[frame.geometry.isna(), polygons.id_field].tolist()}"
            )

        has_geom = frame.geometry.notna()
        invalid = frame[has_geom & ~frame.geometry.is_valid]
        if len(invalid) > 0:
            errors.append(f"Invalid geometries for tracts: {invalid[polygons.id_field].tolist()}")

        polygonal = frame.geometry[has_geom].geom_type.isin(['Polygon', 'MultiPolygon'])
        if not polygonal.all():
            bad = frame.loc[polygonal[~polygonal].index, polygons.id_field].tolist()
            errors.append(f"Non-polygon geometries for tracts: {bad}")

        return len(errors) == 0, errors

    @classmethod
    def generate_validation_report(cls,
                                   points: gpd.GeoSeries,
                                   polygons: PolygonDataset) -> dict:
        """Summarize point and polygon data quality"""
        validated = cls.validate_point_coordinates(points)
        polygons_ok, polygon_errors = cls.validate_polygon_data(polygons)

        return {
            'total_points': len(validated),
            'valid_points': int(validated['is_valid'].sum()),
            'invalid_points': int((~validated['is_valid']).sum()),
            'validation_rate': float(validated['is_valid'].mean()) if len(validated) else 1.0,
            'rejection_reasons': validated.loc[~validated['is_valid'], 'rejection_reason']
                                          .value_counts().to_dict(),
            'total_tracts': len(polygons),
            'polygons_valid': polygons_ok,
            'polygon_errors': polygon_errors,
            'crs_match': points.crs is not None and points.crs == polygons.crs
        }
