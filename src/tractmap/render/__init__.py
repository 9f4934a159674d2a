"""Choropleth classification and rendering"""

from .classify import Classification, classify, palette_colors, NO_DATA_BIN
from .config import LayerConfig, RenderConfig
from .static import render_static
from .interactive import render_interactive

__all__ = [
    'Classification',
    'classify',
    'palette_colors',
    'NO_DATA_BIN',
    'LayerConfig',
    'RenderConfig',
    'render_static',
    'render_interactive'
]
