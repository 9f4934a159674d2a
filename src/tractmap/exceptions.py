"""Error taxonomy for tractmap

Core components (join, aggregation, merge) raise the ValueError subclasses
synchronously and never return partial output. Loaders raise DataSourceError,
which the core never catches.
"""

from typing import Optional


class TractMapError(Exception):
    """Base class for all tractmap errors"""


class InvalidInputError(TractMapError, ValueError):
    """Malformed point coordinates (NaN, empty, out of CRS range)"""


class ProjectionMismatchError(TractMapError, ValueError):
    """CRS tags of points and polygons disagree or are missing"""

    def __init__(self, points_crs, polygons_crs):
        self.points_crs = points_crs
        self.polygons_crs = polygons_crs
        super().__init__(
            f"CRS mismatch: points are in {points_crs}, polygons are in {polygons_crs}; "
            f"reproject explicitly before joining"
        )


class DuplicateKeyError(TractMapError, ValueError):
    """Multiple rows share a join key where uniqueness is required"""

    def __init__(self, field: str, keys):
        self.field = field
        self.keys = list(keys)
        preview = self.keys[:10]
        more = f" (+{len(self.keys) - 10} more)" if len(self.keys) > 10 else ""
        super().__init__(f"Duplicate values in key field '{field}': {preview}{more}")


class SchemaError(TractMapError, ValueError):
    """A referenced field does not exist in the given dataset"""

    def __init__(self, message: str, field: Optional[str] = None,
                 available: Optional[list] = None):
        self.field = field
        self.available = list(available) if available is not None else None
        if available is not None:
            message = f"{message}; available fields: {self.available}"
        super().__init__(message)


class DataSourceError(TractMapError, IOError):
    """A loader could not fetch or parse its source

    Attributes:
        source: Path or URL that failed
        retryable: True for transient failures (timeouts, connection
            resets, HTTP 429/5xx); False for missing files, HTTP 4xx and
            parse errors
    """

    def __init__(self, message: str, source: str = '', retryable: bool = False):
        self.source = source
        self.retryable = retryable
        super().__init__(message)


def require_fields(fields, available, dataset_name: str = 'dataset') -> None:
    """Raise SchemaError unless every field is in available"""
    available = list(available)
    for field in fields:
        if field not in available:
            raise SchemaError(
                f"Field '{field}' not found in {dataset_name}",
                field=field,
                available=available,
            )
