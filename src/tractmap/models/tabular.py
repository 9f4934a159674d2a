"""Tabular data models"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple
import pandas as pd

from ..exceptions import require_fields


@dataclass(frozen=True)
class RowFilter:
    """
    Row predicate applied while (or right after) loading a table

    Use the constructors rather than building instances directly::

        RowFilter.equals('text_general_code', 'Homicide - Criminal')
        RowFilter.not_null('point_x', 'point_y')
    """
    kind: str
    fields: Tuple[str, ...]
    value: Any = None

    @classmethod
    def equals(cls, field: str, value: Any) -> 'RowFilter':
        return cls('equals', (field,), value)

    @classmethod
    def isin(cls, field: str, values: Iterable[Any]) -> 'RowFilter':
        return cls('isin', (field,), tuple(values))

    @classmethod
    def not_null(cls, *fields: str) -> 'RowFilter':
        return cls('not_null', tuple(fields))

    def mask(self, frame: pd.DataFrame) -> pd.Series:
        """Boolean mask of rows that pass this filter"""
        require_fields(self.fields, frame.columns, 'table')
        if self.kind == 'equals':
            return frame[self.fields[0]] == self.value
        if self.kind == 'isin':
            return frame[self.fields[0]].isin(self.value)
        if self.kind == 'not_null':
            return frame[list(self.fields)].notna().all(axis=1)
        raise ValueError(f"Unknown filter kind: {self.kind}")


class TabularDataset:
    """
    Ordered table of rows with named fields

    Row order carries no meaning unless ``order_field`` names a persisted
    ordinal column.
    """

    def __init__(self,
                 frame: pd.DataFrame,
                 name: str = 'table',
                 order_field: Optional[str] = None):
        if order_field is not None:
            require_fields([order_field], frame.columns, name)
        self._frame = frame.reset_index(drop=True).copy()
        self.name = name
        self.order_field = order_field

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return f"TabularDataset(name={self.name!r}, n={len(self)}, fields={self.schema})"

    @property
    def frame(self) -> pd.DataFrame:
        """Copy of the underlying DataFrame"""
        return self._frame.copy()

    @property
    def schema(self) -> List[str]:
        return list(self._frame.columns)

    def rows(self) -> List[dict]:
        return self._frame.to_dict('records')

    def filter(self, *filters: RowFilter) -> 'TabularDataset':
        """Apply filters (logical AND) and return a new dataset"""
        mask = pd.Series(True, index=self._frame.index)
        for row_filter in filters:
            mask &= row_filter.mask(self._frame)
        return TabularDataset(self._frame.loc[mask], name=self.name, order_field=self.order_field)

    def select(self, fields: Iterable[str]) -> 'TabularDataset':
        fields = list(fields)
        require_fields(fields, self._frame.columns, self.name)
        order_field = self.order_field if self.order_field in fields else None
        return TabularDataset(self._frame[fields], name=self.name, order_field=order_field)

    @classmethod
    def from_rows(cls, rows: List[dict], name: str = 'table',
                  columns: Optional[List[str]] = None) -> 'TabularDataset':
        return cls(pd.DataFrame(rows, columns=columns), name=name)
