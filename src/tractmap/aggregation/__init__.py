"""Per-tract aggregation module"""

from .aggregator import Aggregator, aggregate

__all__ = [
    'Aggregator',
    'aggregate'
]
