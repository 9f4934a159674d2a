"""Explicit styling configuration for render calls"""

from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

import pandas as pd

from ..exceptions import require_fields
from ..models import PolygonDataset
from .classify import SCHEMES


@dataclass
class LayerConfig:
    """One named overlay group drawn from a numeric field"""
    name: str
    fill_field: str
    bins: Optional[int] = None
    scheme: Optional[str] = None
    palette: Optional[str] = None
    show: bool = True


@dataclass
class RenderConfig:
    """
    Styling for one render call

    Replaces loosely typed keyword styling and process-wide number
    formatting options: everything a renderer needs is on this object.

    Attributes:
        fill_field: Numeric field that drives fill colour
        bins: Number of colour classes
        scheme: 'equal_interval' or 'quantile'
        palette: matplotlib colormap name
        na_color: Fill for tracts without data
        label_field: Field shown in hover text (interactive) or as title context
        layers: Ordered overlay groups; empty means one layer for ``fill_field``
        float_format: Format string for numbers in legends and tooltips
    """
    fill_field: str
    bins: int = 5
    scheme: str = 'equal_interval'
    palette: str = 'YlOrRd'
    na_color: str = 'lightgrey'
    label_field: Optional[str] = None
    layers: List[LayerConfig] = field(default_factory=list)
    border_color: str = '#444444'
    border_width: float = 0.3
    fill_opacity: float = 0.7
    title: Optional[str] = None
    float_format: str = '{:,.2f}'
    dpi: int = 150
    figsize: Tuple[float, float] = (10.0, 10.0)
    tiles: str = 'CartoDB positron'
    zoom_start: int = 11

    def resolved_layers(self) -> List[LayerConfig]:
        """Layers with per-layer gaps filled from this config"""
        layers = self.layers or [LayerConfig(name=self.fill_field, fill_field=self.fill_field)]
        return [
            replace(
                layer,
                bins=layer.bins or self.bins,
                scheme=layer.scheme or self.scheme,
                palette=layer.palette or self.palette
            )
            for layer in layers
        ]

    def validate(self, dataset: PolygonDataset) -> None:
        """Raise SchemaError for fields the dataset lacks, ValueError for bad options"""
        fields = [layer.fill_field for layer in self.resolved_layers()]
        if self.label_field is not None:
            fields.append(self.label_field)
        require_fields(fields, dataset.schema, dataset.name)

        for layer in self.resolved_layers():
            if layer.bins < 1:
                raise ValueError(f"Layer {layer.name}: bins must be at least 1")
            if layer.scheme not in SCHEMES:
                raise ValueError(f"Layer {layer.name}: unknown scheme {layer.scheme}")

        names = [layer.name for layer in self.resolved_layers()]
        if len(set(names)) != len(names):
            raise ValueError(f"Layer names must be unique: {names}")

    def format_value(self, value) -> str:
        if pd.isna(value):
            return 'No data'
        return self.float_format.format(value)
