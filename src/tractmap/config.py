"""Run configuration loaded from YAML or JSON"""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .exceptions import SchemaError
from .models import RowFilter
from .render import LayerConfig, RenderConfig


@dataclass
class PolygonSourceConfig:
    source: str
    id_field: str
    layer: Optional[str] = None
    order_field: Optional[str] = None
    crs: Optional[str] = None  # reproject to this CRS after loading


@dataclass
class PointJoinConfig:
    """Point table counted per tract (e.g. homicides)"""
    name: str
    source: str
    x_field: str
    y_field: str
    crs: str
    count_field: str
    filters: List[RowFilter] = field(default_factory=list)
    dtype: Dict[str, str] = field(default_factory=dict)


@dataclass
class TableSourceConfig:
    """Tract-level table merged by key (e.g. blood-lead results)"""
    name: str
    source: str
    key_field: str
    mode: str = 'left'
    duplicates: str = 'error'
    filters: List[RowFilter] = field(default_factory=list)
    dtype: Dict[str, str] = field(default_factory=dict)
    fields: Optional[List[str]] = None


@dataclass
class RateConfig:
    numerator: str
    denominator: str
    out_field: str
    per: float = 1000.0


@dataclass
class OutputConfig:
    directory: str = 'output'
    static_map: Optional[str] = None
    interactive_map: Optional[str] = None
    geojson: Optional[str] = 'merged_tracts.geojson'
    table: Optional[str] = 'merged_tracts.csv'


@dataclass
class RunConfig:
    polygons: PolygonSourceConfig
    points: List[PointJoinConfig] = field(default_factory=list)
    tables: List[TableSourceConfig] = field(default_factory=list)
    rates: List[RateConfig] = field(default_factory=list)
    render: Optional[RenderConfig] = None
    output: OutputConfig = field(default_factory=OutputConfig)
    timeout: float = 60.0
    max_retries: int = 2
    base_dir: Path = field(default_factory=Path.cwd)

    def resolve(self, source: str) -> str:
        """Resolve a relative local path against the config file's directory"""
        if '://' in source or Path(source).is_absolute():
            return source
        return str(self.base_dir / source)


def _check_keys(cls, data: Dict[str, Any], where: str) -> None:
    if not isinstance(data, dict):
        raise SchemaError(f"{where} must be a mapping, got {type(data).__name__}")
    allowed = {f.name for f in fields(cls)}
    unknown = set(data) - allowed
    if unknown:
        raise SchemaError(f"Unknown keys in {where}: {sorted(unknown)}", available=sorted(allowed))


def _build(cls, data: Dict[str, Any], where: str, **overrides):
    _check_keys(cls, data, where)
    values = dict(data)
    values.update(overrides)
    try:
        return cls(**values)
    except TypeError as e:
        raise SchemaError(f"Invalid {where}: {e}") from e


def parse_filters(raw: Optional[List[Dict[str, Any]]], where: str) -> List[RowFilter]:
    """
    Parse filter entries::

        - equals: {field: text_general_code, value: Homicide - Criminal}
        - isin: {field: text_general_code, values: [Thefts, Vandalism]}
        - not_null: [point_x, point_y]
    """
    filters = []
    for i, entry in enumerate(raw or []):
        if not isinstance(entry, dict) or len(entry) != 1:
            raise SchemaError(f"{where}.filters[{i}] must have exactly one filter key")
        kind, options = next(iter(entry.items()))
        if kind == 'equals':
            filters.append(RowFilter.equals(options['field'], options['value']))
        elif kind == 'isin':
            filters.append(RowFilter.isin(options['field'], options['values']))
        elif kind == 'not_null':
            names = [options] if isinstance(options, str) else list(options)
            filters.append(RowFilter.not_null(*names))
        else:
            raise SchemaError(f"Unknown filter '{kind}' in {where}.filters[{i}]")
    return filters


def parse_render_config(data: Dict[str, Any]) -> RenderConfig:
    _check_keys(RenderConfig, data, 'render')
    values = dict(data)
    values['layers'] = [
        _build(LayerConfig, layer, f'render.layers[{i}]')
        for i, layer in enumerate(values.get('layers') or [])
    ]
    if 'figsize' in values:
        values['figsize'] = tuple(values['figsize'])
    return _build(RenderConfig, values, 'render')


def parse_config(data: Dict[str, Any], base_dir: Union[str, Path, None] = None) -> RunConfig:
    """Build a RunConfig from an already-parsed mapping"""
    _check_keys(RunConfig, data, 'config')
    if 'polygons' not in data:
        raise SchemaError("config is missing the 'polygons' section")

    points = [
        _build(PointJoinConfig, entry, f'points[{i}]',
               filters=parse_filters(entry.get('filters'), f'points[{i}]'))
        for i, entry in enumerate(data.get('points') or [])
    ]
    tables = [
        _build(TableSourceConfig, entry, f'tables[{i}]',
               filters=parse_filters(entry.get('filters'), f'tables[{i}]'))
        for i, entry in enumerate(data.get('tables') or [])
    ]
    rates = [_build(RateConfig, entry, f'rates[{i}]')
             for i, entry in enumerate(data.get('rates') or [])]

    return RunConfig(
        polygons=_build(PolygonSourceConfig, data['polygons'], 'polygons'),
        points=points,
        tables=tables,
        rates=rates,
        render=parse_render_config(data['render']) if data.get('render') else None,
        output=_build(OutputConfig, data.get('output') or {}, 'output'),
        timeout=float(data.get('timeout', 60.0)),
        max_retries=int(data.get('max_retries', 2)),
        base_dir=Path(base_dir) if base_dir is not None else Path.cwd()
    )


def load_config(path: Union[str, Path]) -> RunConfig:
    """Load a run configuration from a YAML (.yaml/.yml) or JSON file"""
    path = Path(path)
    with open(path) as f:
        if path.suffix in ('.yaml', '.yml'):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    return parse_config(data or {}, base_dir=path.parent)
