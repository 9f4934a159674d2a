"""Data loading and transformation utilities"""

import logging
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Optional, Union
from urllib.parse import urlparse

import numpy as np
import pandas as pd
import geopandas as gpd
import requests

from ..exceptions import DataSourceError, require_fields
from ..models import PolygonDataset, RowFilter, TabularDataset


logger = logging.getLogger(__name__)

Source = Union[str, Path]

RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


def is_url(source: Source) -> bool:
    return urlparse(str(source)).scheme in ('http', 'https')


class DataLoader:
    """
    Resolve local paths and URLs to readable files

    Remote sources are downloaded into a private temporary directory that
    lives as long as the loader. Loaders never retry; they raise
    DataSourceError with ``retryable`` set so the caller can decide.
    """

    def __init__(self,
                 data_dir: Optional[Source] = None,
                 timeout: float = 60.0,
                 session: Optional[requests.Session] = None):
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.timeout = timeout
        self.session = session or requests.Session()
        self._download_dir: Optional[tempfile.TemporaryDirectory] = None

    def resolve(self, source: Source) -> Path:
        """Local path for a source, downloading it first if it is a URL"""
        if is_url(source):
            return self._download(str(source))

        path = Path(source)
        if not path.is_absolute() and self.data_dir is not None:
            path = self.data_dir / path
        if not path.exists():
            raise DataSourceError(f"No such file or directory: {path}",
                                  source=str(source), retryable=False)
        return path

    def _download(self, url: str) -> Path:
        if self._download_dir is None:
            self._download_dir = tempfile.TemporaryDirectory(prefix='tractmap-')

        filename = Path(urlparse(url).path).name or 'download'
        target = Path(self._download_dir.name) / filename

        logger.info(f"Downloading {url}")
        try:
            response = self.session.get(url, timeout=self.timeout, stream=True)
            response.raise_for_status()
            with open(target, 'wb') as fh:
                for chunk in response.iter_content(chunk_size=1 << 16):
                    fh.write(chunk)
        except requests.exceptions.RequestException as e:
            target.unlink(missing_ok=True)
            raise self._download_error(url, e) from e

        logger.debug(f"Saved {url} to {target} ({target.stat().st_size} bytes)")
        return target

    @staticmethod
    def _download_error(url: str, error: requests.exceptions.RequestException) -> DataSourceError:
        if isinstance(error, requests.exceptions.HTTPError):
            status = error.response.status_code if error.response is not None else None
            return DataSourceError(f"HTTP {status} fetching {url}", source=url,
                                   retryable=status in RETRYABLE_STATUS)
        if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
            return DataSourceError(f"Could not reach {url}: {error}", source=url, retryable=True)
        if isinstance(error, (requests.exceptions.ChunkedEncodingError,
                              requests.exceptions.ContentDecodingError)):
            return DataSourceError(f"Download of {url} was interrupted: {error}", source=url,
                                   retryable=True)
        return DataSourceError(f"Request for {url} failed: {error}", source=url, retryable=False)

    def cleanup(self) -> None:
        if self._download_dir is not None:
            self._download_dir.cleanup()
            self._download_dir = None


class PolygonLoader(DataLoader):
    """Load tract polygons from a shapefile, zipped shapefile or GeoJSON"""

    def load(self,
             source: Source,
             id_field: str,
             layer: Optional[str] = None,
             order_field: Optional[str] = None,
             name: Optional[str] = None) -> PolygonDataset:
        """
        Args:
            source: Directory of shapefile parts, .shp, .zip, .geojson or a URL
            id_field: Unique tract identifier column (e.g. 'GEOID10')
            layer: Shapefile stem to pick when a directory or zip holds several
            order_field: Persisted ordinal column, if the file carries one
            name: Dataset label; defaults to the file stem
        """
        path = self.resolve(source)
        target = self._readable_path(path, layer)
        label = name or path.stem

        try:
            frame = gpd.read_file(target)
        except Exception as e:
            raise DataSourceError(f"Could not read polygons from {source}: {e}",
                                  source=str(source), retryable=False) from e

        logger.info(f"Loaded {len(frame)} polygons from {source} (crs={frame.crs})")
        return PolygonDataset(frame, id_field, order_field=order_field, name=label)

    def _readable_path(self, path: Path, layer: Optional[str]) -> str:
        if path.is_dir():
            shapefiles = sorted(path.glob('*.shp'))
            if layer is not None:
                shapefiles = [p for p in shapefiles if p.stem == layer]
            if len(shapefiles) != 1:
                raise DataSourceError(
                    f"Expected one shapefile in {path}"
                    f"{f' named {layer}' if layer else ''}, found {len(shapefiles)}",
                    source=str(path), retryable=False
                )
            return str(shapefiles[0])

        if path.suffix.lower() == '.zip':
            target = f'zip://{path}'
            if layer is not None:
                target += f'!{layer}.shp'
            return target

        return str(path)


class TabularLoader(DataLoader):
    """Load CSV tables, optionally filtering rows"""

    def load(self,
             source: Source,
             dtype: Optional[Dict[str, object]] = None,
             filters: Iterable[RowFilter] = (),
             name: Optional[str] = None,
             order_field: Optional[str] = None,
             **read_kwargs) -> TabularDataset:
        """
        Args:
            source: CSV path or URL
            dtype: Column dtypes, e.g. {'GEOID10': str} to keep leading zeros
            filters: Row filters applied right after parsing
            name: Dataset label; defaults to the file stem
            order_field: Persisted ordinal column, if the file carries one
            **read_kwargs: Passed through to pandas.read_csv
        """
        path = self.resolve(source)
        label = name or path.stem

        try:
            frame = pd.read_csv(path, dtype=dtype, **read_kwargs)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise DataSourceError(f"Could not parse {source}: {e}",
                                  source=str(source), retryable=False) from e

        dataset = TabularDataset(frame, name=label, order_field=order_field)
        filters = list(filters)
        if filters:
            dataset = dataset.filter(*filters)
            logger.info(f"Loaded {len(frame)} rows from {source}, {len(dataset)} after filtering")
        else:
            logger.info(f"Loaded {len(frame)} rows from {source}")
        return dataset


class DataTransformer:
    """Transform and prepare data for joining and mapping"""

    @staticmethod
    def points_from_table(dataset: TabularDataset,
                          x_field: str,
                          y_field: str,
                          crs) -> gpd.GeoDataFrame:
        """
        Build point geometries from coordinate columns

        Rows keep their index so assignments can be attached back to the
        table. Rows with absent coordinates should be filtered out first
        (``RowFilter.not_null``); anything non-numeric becomes NaN and is
        rejected by the spatial join.
        """
        frame = dataset.frame
        require_fields([x_field, y_field], frame.columns, dataset.name)

        x = pd.to_numeric(frame[x_field], errors='coerce')
        y = pd.to_numeric(frame[y_field], errors='coerce')
        return gpd.GeoDataFrame(frame, geometry=gpd.points_from_xy(x, y), crs=crs)

    @staticmethod
    def rate(dataset: PolygonDataset,
             numerator: str,
             denominator: str,
             out_field: str,
             per: float = 1000.0) -> PolygonDataset:
        """
        Add ``numerator / denominator * per`` as a new field

        Zero or missing denominators give a null rate, never 0 or infinity.
        """
        attrs = dataset.attribute_table()
        require_fields([numerator, denominator], attrs.columns, dataset.name)

        num = pd.to_numeric(attrs[numerator], errors='coerce')
        den = pd.to_numeric(attrs[denominator], errors='coerce')
        attrs[out_field] = np.where(den > 0, num / den.where(den > 0) * per, np.nan)
        return dataset.with_attributes(attrs)

    @staticmethod
    def normalize_ids(dataset: TabularDataset, field: str, width: int) -> TabularDataset:
        """Zero-pad identifiers that were read as numbers (e.g. 42101000100)"""
        frame = dataset.frame
        require_fields([field], frame.columns, dataset.name)
        ids = frame[field]
        numeric = pd.to_numeric(ids, errors='coerce')
        as_int = numeric.dropna().astype('int64').astype(str).str.zfill(width)
        frame[field] = ids.where(ids.isna(), ids.astype(str).str.strip())
        frame.loc[as_int.index, field] = as_int
        return TabularDataset(frame, name=dataset.name, order_field=dataset.order_field)
