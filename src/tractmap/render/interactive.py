"""Interactive choropleth maps with folium"""

import html
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

import folium
import geopandas as gpd

from ..models import PolygonDataset
from .classify import Classification, classify
from .config import RenderConfig


logger = logging.getLogger(__name__)

WEB_CRS = 'EPSG:4326'
MAX_OVERLAY_POINTS = 5000


def render_interactive(dataset: PolygonDataset,
                       config: RenderConfig,
                       path: Optional[Union[str, Path]] = None,
                       overlays: Optional[Dict[str, gpd.GeoDataFrame]] = None) -> folium.Map:
    """
    Build a layered web map, one toggleable group per configured layer

    Args:
        dataset: Merged tract polygons
        config: Styling
        path: Where to save the HTML document; the map is returned either way
        overlays: Named point layers shown as circle markers
    """
    config.validate(dataset)
    frame = dataset.frame
    if frame.crs is not None and frame.crs != WEB_CRS:
        frame = frame.to_crs(WEB_CRS)

    min_x, min_y, max_x, max_y = frame.total_bounds
    m = folium.Map(
        location=[(min_y + max_y) / 2, (min_x + max_x) / 2],
        zoom_start=config.zoom_start,
        tiles=config.tiles,
        prefer_canvas=True
    )

    legends = []
    for i, layer in enumerate(config.resolved_layers()):
        classification = classify(
            frame[layer.fill_field],
            bins=layer.bins,
            scheme=layer.scheme,
            palette=layer.palette,
            na_color=config.na_color
        )
        fill_col = f'__fill_{i}'
        label_col = f'__label_{i}'
        layer_frame = frame.copy()
        layer_frame[fill_col] = classification.colors
        layer_frame[label_col] = [config.format_value(v) for v in frame[layer.fill_field]]

        tooltip_fields = [label_col]
        tooltip_aliases = [f"{layer.name}:"]
        if config.label_field is not None:
            layer_frame[config.label_field] = layer_frame[config.label_field].astype(str)
            tooltip_fields.insert(0, config.label_field)
            tooltip_aliases.insert(0, f"{config.label_field}:")

        keep = tooltip_fields + [fill_col, dataset.id_field, layer_frame.geometry.name]
        layer_frame = layer_frame[list(dict.fromkeys(keep))]

        group = folium.FeatureGroup(name=layer.name, show=layer.show)
        folium.GeoJson(
            layer_frame.to_json(default=str),
            name=layer.name,
            style_function=lambda feature, col=fill_col: {
                'fillColor': feature['properties'][col],
                'color': config.border_color,
                'weight': config.border_width,
                'fillOpacity': config.fill_opacity
            },
            tooltip=folium.GeoJsonTooltip(fields=tooltip_fields, aliases=tooltip_aliases,
                                          localize=True)
        ).add_to(group)
        group.add_to(m)
        legends.append(_legend_html(layer.name, classification, config))

    for name, overlay in (overlays or {}).items():
        _add_point_overlay(m, name, overlay)

    folium.LayerControl(collapsed=False).add_to(m)
    m.get_root().html.add_child(folium.Element(_legend_box(legends)))

    if config.title:
        title_html = f'<h3 align="center" style="font-size:18px"><b>{html.escape(config.title)}</b></h3>'
        m.get_root().html.add_child(folium.Element(title_html))

    if path is not None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        m.save(str(path))
        logger.info(f"Interactive map saved: {path}")

    return m


def _add_point_overlay(m: folium.Map, name: str, overlay: gpd.GeoDataFrame) -> None:
    points = overlay
    if points.crs is not None and points.crs != WEB_CRS:
        points = points.to_crs(WEB_CRS)
    points = points[points.geometry.notna() & (points.geom_type == 'Point')]
    if len(points) > MAX_OVERLAY_POINTS:
        logger.warning(f"Overlay {name} has {len(points)} points; drawing the first {MAX_OVERLAY_POINTS}")
        points = points.iloc[:MAX_OVERLAY_POINTS]

    group = folium.FeatureGroup(name=name, show=False)
    for geom in points.geometry:
        folium.CircleMarker(
            location=[geom.y, geom.x],
            radius=3,
            color='#1f78b4',
            fill=True,
            fill_opacity=0.6,
            weight=1
        ).add_to(group)
    group.add_to(m)


def _legend_html(title: str, classification: Classification, config: RenderConfig) -> str:
    rows = []
    for label, color in classification.legend_entries(config.float_format):
        rows.append(
            f'<div><span style="display:inline-block;width:12px;height:12px;'
            f'background:{color};margin-right:6px;border:1px solid #999;"></span>'
            f'{html.escape(label)}</div>'
        )
    return f'<div style="margin-bottom:6px;"><b>{html.escape(title)}</b>{"".join(rows)}</div>'


def _legend_box(legends: List[str]) -> str:
    return (
        '<div style="position: fixed; bottom: 20px; left: 10px; z-index: 9999; '
        'background: white; padding: 6px 8px; border: 1px solid #bbb; font-size: 12px;">'
        f'{"".join(legends)}</div>'
    )
