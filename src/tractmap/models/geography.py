"""Geographic data models"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional
import pandas as pd
import geopandas as gpd
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from ..exceptions import DuplicateKeyError, SchemaError, require_fields


@dataclass(frozen=True)
class PolygonRecord:
    """Census tract polygon with its attribute row"""
    tract_id: str
    attributes: Mapping[str, Any] = field(default_factory=dict)
    geometry: Optional[BaseGeometry] = None

    def contains(self, x: float, y: float) -> bool:
        """Check whether a coordinate lies inside or on the tract boundary"""
        return self.geometry is not None and self.geometry.covers(Point(x, y))


class PolygonDataset:
    """
    Ordered, immutable collection of tract polygons

    Rows keep the order they were read in (or, when ``order_field`` is
    given, the order of that persisted ordinal). Every operation that
    derives a new dataset keeps that order; callers get copies of the
    underlying frame, never the frame itself.

    Args:
        frame: GeoDataFrame with a geometry column and an id column
        id_field: Column holding the unique tract identifier (e.g. GEOID10)
        order_field: Optional persisted ordinal used to restore file order
        name: Label used in log and error messages
    """

    def __init__(self,
                 frame: gpd.GeoDataFrame,
                 id_field: str,
                 order_field: Optional[str] = None,
                 name: str = 'polygons'):
        if not isinstance(frame, gpd.GeoDataFrame):
            raise TypeError(f"{name} must be a GeoDataFrame, got {type(frame).__name__}")

        require_fields([id_field], frame.columns, name)
        if order_field is not None:
            require_fields([order_field], frame.columns, name)

        data = frame.copy()
        if order_field is not None:
            data = data.sort_values(order_field, kind='mergesort')
        data = data.reset_index(drop=True)

        if data[id_field].isna().any():
            missing = data.index[data[id_field].isna()].tolist()
            raise SchemaError(f"Null tract ids in {name} at rows {missing[:10]}", field=id_field)

        data[id_field] = data[id_field].astype(str).str.strip()
        duplicated = data[id_field].duplicated(keep=False)
        if duplicated.any():
            raise DuplicateKeyError(id_field, data.loc[duplicated, id_field].unique())

        self._frame = data
        self.id_field = id_field
        self.order_field = order_field
        self.name = name

    def __len__(self) -> int:
        return len(self._frame)

    def __iter__(self) -> Iterator[PolygonRecord]:
        return self.records()

    def __repr__(self) -> str:
        return (f"PolygonDataset(name={self.name!r}, id_field={self.id_field!r}, "
                f"n={len(self)}, crs={self.crs})")

    @property
    def crs(self):
        return self._frame.crs

    @property
    def geometry_name(self) -> str:
        return self._frame.geometry.name

    @property
    def frame(self) -> gpd.GeoDataFrame:
        """Copy of the underlying GeoDataFrame"""
        return self._frame.copy()

    @property
    def tract_ids(self) -> List[str]:
        return self._frame[self.id_field].tolist()

    @property
    def schema(self) -> List[str]:
        """Attribute field names (geometry excluded)"""
        return [c for c in self._frame.columns if c != self.geometry_name]

    def geometry_table(self) -> gpd.GeoDataFrame:
        """Tract id and geometry only"""
        return self._frame[[self.id_field, self.geometry_name]].copy()

    def attribute_table(self) -> pd.DataFrame:
        """Attribute rows without geometry, in dataset order"""
        return pd.DataFrame(self._frame.drop(columns=self.geometry_name))

    def records(self) -> Iterator[PolygonRecord]:
        attrs = self.attribute_table()
        geoms = self._frame.geometry
        for i, row in enumerate(attrs.to_dict('records')):
            yield PolygonRecord(
                tract_id=row[self.id_field],
                attributes=row,
                geometry=geoms.iloc[i]
            )

    def record(self, tract_id: str) -> PolygonRecord:
        matches = self._frame.index[self._frame[self.id_field] == str(tract_id)]
        if len(matches) == 0:
            raise KeyError(tract_id)
        i = matches[0]
        row = self.attribute_table().iloc[i].to_dict()
        return PolygonRecord(tract_id=row[self.id_field], attributes=row,
                             geometry=self._frame.geometry.iloc[i])

    def to_crs(self, crs) -> 'PolygonDataset':
        """Reproject into another CRS, returning a new dataset"""
        return self._derive(self._frame.to_crs(crs))

    def with_attributes(self, attributes: pd.DataFrame) -> 'PolygonDataset':
        """
        New dataset version with the same geometry and a replacement attribute table

        The attribute table must list exactly this dataset's tract ids in
        this dataset's order; rows are never realigned by position alone.
        """
        require_fields([self.id_field], attributes.columns, 'attribute table')
        incoming_ids = attributes[self.id_field].astype(str).str.strip().tolist()
        if incoming_ids != self.tract_ids:
            raise SchemaError(
                f"Attribute table for {self.name} does not match tract order",
                field=self.id_field
            )

        columns = [c for c in attributes.columns if c != self.geometry_name]
        data = attributes[columns].reset_index(drop=True).copy()
        data[self.id_field] = incoming_ids
        frame = gpd.GeoDataFrame(
            data,
            geometry=self._frame.geometry.reset_index(drop=True),
            crs=self.crs
        )
        return self._derive(frame)

    def subset(self, tract_ids) -> 'PolygonDataset':
        """Keep only the given tracts, in dataset order"""
        wanted = {str(t) for t in tract_ids}
        mask = self._frame[self.id_field].isin(wanted)
        return self._derive(self._frame.loc[mask].reset_index(drop=True))

    def _derive(self, frame: gpd.GeoDataFrame) -> 'PolygonDataset':
        order_field = self.order_field if self.order_field in frame.columns else None
        return PolygonDataset(frame, self.id_field, order_field=order_field, name=self.name)

    @classmethod
    def from_records(cls,
                     records: List[PolygonRecord],
                     id_field: str = 'tract_id',
                     crs=None,
                     name: str = 'polygons') -> 'PolygonDataset':
        """Build a dataset from PolygonRecord objects, keeping list order"""
        data = []
        for record in records:
            row: Dict[str, Any] = dict(record.attributes)
            row[id_field] = record.tract_id
            row['geometry'] = record.geometry
            data.append(row)
        if not data:
            data = {id_field: [], 'geometry': []}
        frame = gpd.GeoDataFrame(data, geometry='geometry', crs=crs)
        return cls(frame, id_field, name=name)
