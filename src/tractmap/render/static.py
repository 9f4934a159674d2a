"""Static choropleth images with matplotlib"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import geopandas as gpd
import matplotlib.pyplot as plt
from matplotlib.patches import Patch

from ..models import PolygonDataset
from .classify import classify
from .config import RenderConfig


logger = logging.getLogger(__name__)


def render_static(dataset: PolygonDataset,
                  config: RenderConfig,
                  path: Union[str, Path],
                  overlays: Optional[Dict[str, gpd.GeoDataFrame]] = None) -> Path:
    """
    Draw one panel per layer and save as PNG/JPEG (format from the suffix)

    Args:
        dataset: Merged tract polygons
        config: Styling
        path: Output image path
        overlays: Named point/line layers drawn on top of every panel
    """
    config.validate(dataset)
    path = Path(path)
    frame = dataset.frame
    layers = config.resolved_layers()

    fig, axes = plt.subplots(
        1, len(layers),
        figsize=(config.figsize[0] * len(layers), config.figsize[1]),
        squeeze=False
    )

    for ax, layer in zip(axes[0], layers):
        classification = classify(
            frame[layer.fill_field],
            bins=layer.bins,
            scheme=layer.scheme,
            palette=layer.palette,
            na_color=config.na_color
        )
        frame.plot(
            ax=ax,
            color=classification.colors.tolist(),
            edgecolor=config.border_color,
            linewidth=config.border_width
        )

        for name, overlay in (overlays or {}).items():
            if overlay.crs != dataset.crs:
                overlay = overlay.to_crs(dataset.crs)
            overlay.plot(ax=ax, markersize=2, color='#222222', alpha=0.6, label=name)

        handles = [
            Patch(facecolor=color, edgecolor=config.border_color, label=label)
            for label, color in classification.legend_entries(config.float_format)
        ]
        ax.legend(handles=handles, title=layer.name, loc='lower right', fontsize=8)
        ax.set_axis_off()
        ax.set_aspect('equal')
        if len(layers) > 1:
            ax.set_title(layer.name)

        if classification.no_data_count:
            logger.debug(f"{layer.name}: {classification.no_data_count} tracts without data")

    if config.title:
        fig.suptitle(config.title, fontsize=16, fontweight='bold')

    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=config.dpi, bbox_inches='tight', facecolor='white')
    plt.close(fig)

    logger.info(f"Map saved: {path}")
    return path
