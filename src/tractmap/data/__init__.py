"""Data generation and loading modules"""

from .geographic_generator import GeographicDataGenerator
from .data_loader import DataLoader, PolygonLoader, TabularLoader, DataTransformer

__all__ = [
    'GeographicDataGenerator',
    'DataLoader',
    'PolygonLoader',
    'TabularLoader',
    'DataTransformer'
]
