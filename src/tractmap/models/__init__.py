"""Data models for tractmap"""

from .geography import PolygonRecord, PolygonDataset
from .tabular import RowFilter, TabularDataset
from .counts import AggregatedCount, AggregationResult
from .validators import DataValidator

__all__ = [
    'PolygonRecord',
    'PolygonDataset',
    'RowFilter',
    'TabularDataset',
    'AggregatedCount',
    'AggregationResult',
    'DataValidator'
]
