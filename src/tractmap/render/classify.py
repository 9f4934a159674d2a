"""Choropleth classification: values to bins to colours"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
import pandas as pd
import matplotlib
from matplotlib.colors import is_color_like, to_hex


SCHEMES = ('equal_interval', 'quantile')

NO_DATA_BIN = -1


@dataclass
class Classification:
    """
    Bin assignment for one numeric field

    Null values get bin ``NO_DATA_BIN`` and ``na_color``; they are never
    folded into the lowest bin.
    """
    edges: List[float]
    bins: pd.Series
    colors: pd.Series
    palette: List[str]
    na_color: str

    @property
    def k(self) -> int:
        return len(self.palette)

    @property
    def no_data_count(self) -> int:
        return int((self.bins == NO_DATA_BIN).sum())

    def legend_entries(self, float_format: str = '{:,.2f}') -> List[Tuple[str, str]]:
        """(label, colour) pairs, lowest bin first, with a trailing 'No data' entry"""
        entries = []
        for i, color in enumerate(self.palette):
            lo, hi = self.edges[i], self.edges[i + 1]
            if lo == hi:
                label = float_format.format(lo)
            else:
                label = f"{float_format.format(lo)} - {float_format.format(hi)}"
            entries.append((label, color))
        entries.append(('No data', self.na_color))
        return entries


def palette_colors(palette: str, k: int) -> List[str]:
    """k evenly spaced hex colours from a named matplotlib colormap"""
    try:
        cmap = matplotlib.colormaps[palette]
    except KeyError as e:
        raise ValueError(f"Unknown palette: {palette}") from e
    if k == 1:
        return [to_hex(cmap(0.6))]
    return [to_hex(cmap(x)) for x in np.linspace(0.1, 1.0, k)]


def classify(values,
             bins: int = 5,
             scheme: str = 'equal_interval',
             palette: str = 'YlOrRd',
             na_color: str = 'lightgrey') -> Classification:
    """
    Partition observed values into bins and colour each row

    Args:
        values: Numeric values, one per polygon; null/NaN means no data
        bins: Requested number of bins (quantile schemes may return fewer
            when values repeat)
        scheme: 'equal_interval' or 'quantile'
        palette: matplotlib colormap name
        na_color: Colour for rows without data
    """
    if bins < 1:
        raise ValueError(f"bins must be at least 1, got {bins}")
    if scheme not in SCHEMES:
        raise ValueError(f"Unknown classification scheme: {scheme} (expected one of {SCHEMES})")
    if not is_color_like(na_color):
        raise ValueError(f"Invalid na_color: {na_color}")
    na_hex = to_hex(na_color)

    series = pd.to_numeric(pd.Series(values), errors='coerce')
    valid = series.notna() & np.isfinite(series)
    observed = series[valid].to_numpy(dtype=float)

    bin_index = pd.Series(NO_DATA_BIN, index=series.index, dtype=int)

    if len(observed) == 0:
        return Classification(edges=[], bins=bin_index,
                              colors=pd.Series(na_hex, index=series.index),
                              palette=[], na_color=na_hex)

    lo, hi = float(observed.min()), float(observed.max())
    if lo == hi:
        edges = np.array([lo, hi])
    elif scheme == 'equal_interval':
        edges = np.linspace(lo, hi, bins + 1)
    else:
        edges = np.unique(np.quantile(observed, np.linspace(0, 1, bins + 1)))

    k = len(edges) - 1
    bin_index[valid] = np.searchsorted(edges[1:-1], observed, side='right')

    colors = palette_colors(palette, k)
    color_series = pd.Series(na_hex, index=series.index, dtype=object)
    color_series[valid] = [colors[b] for b in bin_index[valid]]

    return Classification(
        edges=[float(e) for e in edges],
        bins=bin_index,
        colors=color_series,
        palette=colors,
        na_color=na_hex
    )
