"""Main CLI entry point for tractmap"""

import click
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any

from ..aggregation import Aggregator
from ..config import load_config
from ..data import DataTransformer, GeographicDataGenerator, PolygonLoader, TabularLoader
from ..models import RowFilter
from ..models.validators import DataValidator
from ..pipeline import ChoroplethPipeline
from ..spatial import SpatialJoinEngine


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('tractmap-cli')


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Run configuration file (YAML/JSON)')
@click.option('--debug/--no-debug', default=False, help='Enable debug mode')
@click.pass_context
def cli(ctx, config: Optional[str], debug: bool):
    """Join incidents and tract tables to census tracts and map them"""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config

    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        ctx.obj['debug'] = True


@cli.command()
@click.option('--output', '-o', type=click.Path(), help='Override the output directory')
@click.pass_context
def run(ctx, output: Optional[str]):
    """Run the full pipeline described by --config"""
    config_path = ctx.obj.get('config_path')
    if not config_path:
        raise click.UsageError("run needs --config")

    config = load_config(config_path)
    if output:
        config.output.directory = str(Path(output).resolve())

    result = ChoroplethPipeline(config).run()

    for name, step in result.step_results.items():
        click.echo(f"  {name}: {step.status.value}")

    if result.final_output is not None:
        click.echo(_format_diagnostics(result.final_output['diagnostics']))

    if result.status == 'failed':
        for error in result.error_summary:
            click.echo(f"Error: {error}", err=True)
        ctx.exit(1)


@cli.command()
@click.option('--polygons', '-p', type=str, required=True, help='Tract polygons (shapefile dir, .shp, .zip, GeoJSON or URL)')
@click.option('--id-field', required=True, help='Tract id field in the polygons')
@click.option('--points', '-i', type=str, required=True, help='Point CSV (path or URL)')
@click.option('--x-field', default='point_x', help='Longitude / x column')
@click.option('--y-field', default='point_y', help='Latitude / y column')
@click.option('--crs', default='EPSG:4326', help='CRS of the point coordinates')
@click.option('--where', multiple=True, help='Equality filter FIELD=VALUE (repeatable)')
@click.option('--count-field', default='count', help='Name of the count column')
@click.option('--output', '-o', type=click.Path(), required=True, help='Output CSV')
@click.pass_context
def join(ctx, polygons: str, id_field: str, points: str, x_field: str, y_field: str,
         crs: str, where: tuple, count_field: str, output: str):
    """Count points per tract (zero-filled) and write a CSV"""
    filters = [RowFilter.not_null(x_field, y_field)]
    for clause in where:
        if '=' not in clause:
            raise click.BadParameter(f"Expected FIELD=VALUE, got {clause}", param_hint='--where')
        field, value = clause.split('=', 1)
        filters.append(RowFilter.equals(field, value))

    tracts = PolygonLoader().load(polygons, id_field)
    table = TabularLoader().load(points, filters=filters)

    point_gdf = DataTransformer.points_from_table(table, x_field, y_field, crs)
    if point_gdf.crs != tracts.crs:
        logger.info(f"Reprojecting points from {point_gdf.crs} to {tracts.crs}")
        point_gdf = point_gdf.to_crs(tracts.crs)

    engine = SpatialJoinEngine()
    result = Aggregator().aggregate(engine.assign(point_gdf, tracts), tracts, value_field=count_field)

    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    result.to_frame(id_field=id_field).to_csv(output_path, index=False)
    logger.info(f"Counts saved to {output_path}")

    click.echo(f"\nJoin Summary:")
    click.echo(f"Tracts: {len(result.counts)}")
    click.echo(f"Points in tracts: {result.total}")
    click.echo(f"Unmatched points: {result.unmatched_count}")
    click.echo(f"Ambiguous points: {engine.last_ambiguous_count}")
    click.echo(f"Tracts with zero: {result.zero_filled}")


@cli.command()
@click.option('--polygons', '-p', type=str, required=True, help='Tract polygons')
@click.option('--id-field', required=True, help='Tract id field in the polygons')
@click.option('--points', '-i', type=str, required=True, help='Point CSV')
@click.option('--x-field', default='point_x')
@click.option('--y-field', default='point_y')
@click.option('--crs', default='EPSG:4326')
@click.option('--output', '-o', type=click.Path(), help='Output report file')
@click.option('--format', '-f', type=click.Choice(['text', 'json']), default='text')
@click.pass_context
def quality(ctx, polygons: str, id_field: str, points: str, x_field: str, y_field: str,
            crs: str, output: Optional[str], format: str):
    """Report coordinate and polygon data quality before joining"""
    tracts = PolygonLoader().load(polygons, id_field)
    table = TabularLoader().load(points)
    point_gdf = DataTransformer.points_from_table(table, x_field, y_field, crs)

    report = DataValidator.generate_validation_report(point_gdf.geometry, tracts)

    if format == 'text':
        report_text = _format_quality_report_text(report)
    else:
        report_text = json.dumps(report, indent=2, default=str)

    if output:
        Path(output).write_text(report_text)
        logger.info(f"Report saved to {output}")
    else:
        click.echo(report_text)


@cli.command()
@click.option('--output', '-o', type=click.Path(), required=True, help='Output directory')
@click.option('--rows', default=4, type=int, help='Tract grid rows')
@click.option('--cols', default=5, type=int, help='Tract grid columns')
@click.option('--incidents', default=500, type=int, help='Number of point incidents')
@click.option('--seed', default=42, type=int, help='Random seed')
@click.pass_context
def generate(ctx, output: str, rows: int, cols: int, incidents: int, seed: int):
    """Generate synthetic tracts, incidents and tract statistics"""
    logger.info("Generating synthetic data")

    generator = GeographicDataGenerator(seed=seed)
    data = generator.generate_complete_geographic_data(rows=rows, cols=cols, num_incidents=incidents)
    paths = generator.export_to_files(data, output)

    for name, path in paths.items():
        click.echo(f"{name}: {path}")


def _format_diagnostics(diagnostics: Dict[str, Any]) -> str:
    lines = [
        "Diagnostics",
        "-" * 30,
        f"  Tracts: {diagnostics['tracts']}",
    ]
    for name, count in diagnostics['unmatched_points'].items():
        lines.append(f"  {name}: {count} unmatched points, "
                     f"{diagnostics['ambiguous_points'].get(name, 0)} ambiguous, "
                     f"{diagnostics['zero_filled_tracts'].get(name, 0)} zero-filled tracts")
    for name, count in diagnostics['unmatched_tracts_by_table'].items():
        lines.append(f"  {name}: {count} tracts without a row")
    return "\n".join(lines)


def _format_quality_report_text(report: Dict[str, Any]) -> str:
    """Format quality report as text"""
    lines = [
        "Data Quality Report",
        "=" * 50,
        f"Total Points: {report['total_points']}",
        f"Valid Points: {report['valid_points']}",
        f"Invalid Points: {report['invalid_points']}",
        f"Validation Rate: {report['validation_rate']:.1%}",
        f"CRS Match: {report['crs_match']}",
        "",
        "Rejection Reasons:",
        "-" * 30,
    ]

    for reason, count in report['rejection_reasons'].items():
        lines.append(f"  {reason}: {count}")

    lines.extend([
        "",
        "Polygons:",
        "-" * 30,
        f"  Tracts: {report['total_tracts']}",
        f"  Valid: {report['polygons_valid']}",
    ])
    for error in report['polygon_errors']:
        lines.append(f"  {error}")

    return "\n".join(lines)


def main():
    """Main entry point"""
    cli(obj={})


if __name__ == '__main__':
    main()
