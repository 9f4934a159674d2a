"""Order-preserving attribute merge of tabular data onto tract polygons"""

import logging
import warnings
from enum import Enum
from typing import List, Union

import numpy as np
import pandas as pd

from ..exceptions import DuplicateKeyError, SchemaError, require_fields
from ..models import PolygonDataset, TabularDataset


logger = logging.getLogger(__name__)

_ORDINAL = '__tractmap_ordinal__'
_KEY = '__tractmap_key__'


class MergeMode(str, Enum):
    """Join modes for attribute merges

    INNER drops tracts with no incoming row, which changes the set of
    polygons that get drawn; prefer LEFT for polygon data.
    """
    INNER = "inner"
    LEFT = "left"
    OUTER = "outer"


class DuplicatePolicy(str, Enum):
    """What to do when incoming rows share a key"""
    ERROR = "error"
    FIRST = "first"
    SUM = "sum"


class AttributeMerge:
    """
    Join incoming tabular fields onto a PolygonDataset by tract id

    The output lists tracts in exactly the base dataset's order whatever
    order ``incoming`` comes in and however pandas orders the merge: a
    private ordinal is attached to the base rows before merging and the
    result is re-sorted on it afterwards. Geometry is never realigned by
    position; ``PolygonDataset.with_attributes`` checks the id sequence.

    Diagnostics from the most recent call are kept on the instance:
    ``last_unmatched_keys`` (base tracts with no incoming row) and
    ``last_orphan_keys`` (incoming keys with no base tract).
    """

    def __init__(self):
        self.last_unmatched_keys: List[str] = []
        self.last_orphan_keys: List[str] = []

    def merge(self,
              base: PolygonDataset,
              incoming: Union[TabularDataset, pd.DataFrame],
              key_field_base: str,
              key_field_incoming: str,
              mode: Union[MergeMode, str] = MergeMode.LEFT,
              duplicates: Union[DuplicatePolicy, str] = DuplicatePolicy.ERROR,
              suffix: str = '_incoming') -> PolygonDataset:
        """
        Args:
            base: Tract polygons whose order is kept
            incoming: Table to join on
            key_field_base: Key column in ``base`` (usually its id field)
            key_field_incoming: Key column in ``incoming``
            mode: 'left' (default), 'outer' or 'inner'
            duplicates: 'error' (default), 'first' or 'sum'
            suffix: Appended to incoming fields whose names collide with base fields

        Returns:
            New PolygonDataset with base attributes plus incoming fields;
            incoming fields are null for tracts without a match, including
            tracts whose base key is null

        Raises:
            SchemaError: a key field is missing
            DuplicateKeyError: incoming keys repeat and ``duplicates='error'``,
                or non-null base keys repeat
        """
        mode = MergeMode(mode)
        duplicates = DuplicatePolicy(duplicates)
        incoming_name = getattr(incoming, 'name', 'incoming table')
        incoming_frame = incoming.frame if isinstance(incoming, TabularDataset) else incoming.copy()

        base_attrs = base.attribute_table()
        require_fields([key_field_base], base_attrs.columns, base.name)
        require_fields([key_field_incoming], incoming_frame.columns, incoming_name)

        base_keys = self._keys(base_attrs[key_field_base])
        present = base_keys.dropna()
        if present.duplicated().any():
            raise DuplicateKeyError(key_field_base, present[present.duplicated()].unique())

        right = incoming_frame.drop(
            columns=[c for c in {base.geometry_name, 'geometry'}
                     if c in incoming_frame.columns and c != key_field_incoming]
        )
        right[_KEY] = self._keys(right[key_field_incoming])
        right = right[right[_KEY].notna()]
        right = self._resolve_duplicates(right, key_field_incoming, duplicates)
        right = right.drop(columns=[key_field_incoming])

        collisions = self._collision_names(right.columns, base_attrs.columns, suffix)
        right = right.rename(columns=collisions)

        left = base_attrs.copy()
        left[_KEY] = base_keys
        left[_ORDINAL] = np.arange(len(left))

        how = 'inner' if mode == MergeMode.INNER else 'left'
        merged = left.merge(right, on=_KEY, how=how, validate='many_to_one')
        merged = merged.sort_values(_ORDINAL, kind='mergesort').reset_index(drop=True)

        matched = set(right[_KEY])
        base_key_set = set(base_keys.dropna())
        self.last_unmatched_keys = [k for k in base_keys if k not in matched]
        self.last_orphan_keys = sorted(matched - base_key_set)

        if self.last_unmatched_keys:
            logger.info(
                f"{len(self.last_unmatched_keys)} of {len(base)} tracts in {base.name} "
                f"have no row in {incoming_name}"
            )
        if self.last_orphan_keys and mode == MergeMode.OUTER:
            logger.warning(
                f"{len(self.last_orphan_keys)} keys in {incoming_name} match no tract and "
                f"cannot be drawn: {self.last_orphan_keys[:10]}"
            )

        if mode == MergeMode.INNER:
            warnings.warn(
                f"Inner merge dropped {len(self.last_unmatched_keys)} tracts from {base.name}; "
                f"use mode='left' to keep every polygon",
                UserWarning,
                stacklevel=2
            )
            kept = merged[base.id_field].tolist()
            target = base.subset(kept)
        else:
            target = base

        attrs = merged.drop(columns=[_KEY, _ORDINAL])
        return target.with_attributes(attrs)

    @staticmethod
    def _keys(values: pd.Series) -> pd.Series:
        return values.where(values.isna(), values.astype(str).str.strip())

    @staticmethod
    def _collision_names(incoming_columns, base_columns, suffix: str) -> dict:
        taken = set(base_columns) | set(incoming_columns)
        names = {}
        for col in incoming_columns:
            if col == _KEY or col not in base_columns:
                continue
            candidate = f"{col}{suffix}"
            n = 2
            while candidate in taken:
                candidate = f"{col}{suffix}_{n}"
                n += 1
            taken.add(candidate)
            names[col] = candidate
        return names

    @staticmethod
    def _resolve_duplicates(frame: pd.DataFrame,
                            key_field: str,
                            policy: DuplicatePolicy) -> pd.DataFrame:
        dupes = frame[_KEY].duplicated(keep=False)
        if not dupes.any():
            return frame

        if policy == DuplicatePolicy.ERROR:
            raise DuplicateKeyError(key_field, frame.loc[dupes, _KEY].unique())
        if policy == DuplicatePolicy.FIRST:
            logger.info(f"Keeping first of {int(dupes.sum())} rows with repeated '{key_field}'")
            return frame.drop_duplicates(_KEY, keep='first')

        numeric = [c for c in frame.select_dtypes(include='number').columns if c not in (_KEY, key_field)]
        if not numeric:
            raise SchemaError(f"No numeric fields to sum for repeated '{key_field}'", field=key_field)
        summed = frame.groupby(_KEY, sort=False)[numeric].sum(min_count=1).reset_index()
        summed[key_field] = summed[_KEY]
        return summed


def merge(base: PolygonDataset,
          incoming: Union[TabularDataset, pd.DataFrame],
          key_field_base: str,
          key_field_incoming: str,
          mode: Union[MergeMode, str] = MergeMode.LEFT,
          duplicates: Union[DuplicatePolicy, str] = DuplicatePolicy.ERROR) -> PolygonDataset:
    """Order-preserving merge with a new AttributeMerge"""
    return AttributeMerge().merge(base, incoming, key_field_base, key_field_incoming,
                                  mode=mode, duplicates=duplicates)
