"""Join points and tract-level tables to census tracts and map the result"""

from .exceptions import (
    TractMapError,
    InvalidInputError,
    ProjectionMismatchError,
    DuplicateKeyError,
    SchemaError,
    DataSourceError
)
from .models import (
    PolygonRecord,
    PolygonDataset,
    RowFilter,
    TabularDataset,
    AggregatedCount,
    AggregationResult
)
from .spatial import SpatialJoinEngine, assign
from .aggregation import Aggregator, aggregate
from .merge import AttributeMerge, MergeMode, merge

__version__ = "0.1.0"

__all__ = [
    'TractMapError',
    'InvalidInputError',
    'ProjectionMismatchError',
    'DuplicateKeyError',
    'SchemaError',
    'DataSourceError',
    'PolygonRecord',
    'PolygonDataset',
    'RowFilter',
    'TabularDataset',
    'AggregatedCount',
    'AggregationResult',
    'SpatialJoinEngine',
    'assign',
    'Aggregator',
    'aggregate',
    'AttributeMerge',
    'MergeMode',
    'merge'
]
