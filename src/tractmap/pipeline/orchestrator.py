"""Pipeline orchestration for end-to-end choropleth builds"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Callable
from datetime import datetime
from pathlib import Path
from enum import Enum
import logging
import time

from ..aggregation import Aggregator
from ..config import RunConfig
from ..data import DataTransformer, PolygonLoader, TabularLoader
from ..exceptions import DataSourceError
from ..merge import AttributeMerge, MergeMode
from ..models import PolygonDataset
from ..models.validators import DataValidator
from ..render import render_interactive, render_static
from ..spatial import SpatialJoinEngine


class StepStatus(str, Enum):
    """Pipeline step status"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class PipelineStep:
    """Individual pipeline step

    Only retryable DataSourceErrors are retried; any other exception
    fails the step on the first attempt.
    """
    name: str
    function: Callable
    dependencies: List[str] = field(default_factory=list)
    optional: bool = False
    retry_count: int = 0
    max_retries: int = 3
    retry_delay: float = 0.0


@dataclass
class StepResult:
    """Result from a pipeline step"""
    step_name: str
    status: StepStatus
    start_time: datetime
    end_time: datetime
    output: Any = None
    error: Optional[str] = None
    exception: Optional[BaseException] = None
    attempts: int = 0


@dataclass
class PipelineResult:
    """Overall pipeline execution result"""
    pipeline_id: str
    start_time: datetime
    end_time: datetime
    status: str  # "success", "partial_success", "failed"
    step_results: Dict[str, StepResult]
    final_output: Optional[Any] = None
    error_summary: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)


class Pipeline:
    """Generic pipeline orchestrator"""

    def __init__(self, name: str):
        """Initialize pipeline

        Args:
            name: Pipeline name
        """
        self.name = name
        self.steps: Dict[str, PipelineStep] = {}
        self.logger = logging.getLogger(f"pipeline.{name}")

    def add_step(self, step: PipelineStep):
        """Add step to pipeline

        Args:
            step: Pipeline step to add
        """
        self.steps[step.name] = step

    def execute(self, context: Dict[str, Any]) -> PipelineResult:
        """Execute pipeline

        Args:
            context: Execution context

        Returns:
            PipelineResult with execution details
        """
        pipeline_id = context.get('pipeline_id', str(datetime.now().timestamp()))
        start_time = datetime.now()
        step_results: Dict[str, StepResult] = {}

        self.logger.info(f"Starting pipeline execution: {pipeline_id}")

        execution_order = self._determine_execution_order()

        for step_name in execution_order:
            step = self.steps[step_name]

            if not self._check_dependencies(step, step_results):
                now = datetime.now()
                if step.optional:
                    step_results[step_name] = StepResult(step_name, StepStatus.SKIPPED, now, now)
                    continue
                step_results[step_name] = StepResult(
                    step_name, StepStatus.FAILED, now, now, error="Dependencies not met"
                )
                break

            step_result = self._execute_step(step, context, step_results)
            step_results[step_name] = step_result

            if step_result.output is not None:
                context[f"{step_name}_output"] = step_result.output

            if step_result.status == StepStatus.FAILED and not step.optional:
                self.logger.error(f"Required step {step_name} failed, stopping pipeline")
                break

        failed_steps = [r for r in step_results.values() if r.status == StepStatus.FAILED]
        if not failed_steps:
            status = "success"
        elif all(self.steps[r.step_name].optional for r in failed_steps):
            status = "partial_success"
        else:
            status = "failed"

        final_step = execution_order[-1] if execution_order else None
        final_output = None
        if final_step and final_step in step_results:
            final_output = step_results[final_step].output

        error_summary = [
            f"{r.step_name}: {r.error}"
            for r in step_results.values()
            if r.status == StepStatus.FAILED and r.error
        ]

        total_duration = (datetime.now() - start_time).total_seconds()
        metrics = {
            'total_duration_seconds': total_duration,
            'steps_executed': len(step_results),
            'steps_succeeded': sum(1 for r in step_results.values() if r.status == StepStatus.COMPLETED),
            'steps_failed': len(failed_steps)
        }

        return PipelineResult(
            pipeline_id=pipeline_id,
            start_time=start_time,
            end_time=datetime.now(),
            status=status,
            step_results=step_results,
            final_output=final_output,
            error_summary=error_summary,
            metrics=metrics
        )

    def _determine_execution_order(self) -> List[str]:
        """Determine step execution order based on dependencies"""
        order = []
        visited = set()

        def visit(step_name: str):
            if step_name in visited:
                return
            visited.add(step_name)

            step = self.steps.get(step_name)
            if step:
                for dep in step.dependencies:
                    if dep in self.steps:
                        visit(dep)
                order.append(step_name)

        for step_name in self.steps:
            visit(step_name)

        return order

    def _check_dependencies(self, step: PipelineStep, results: Dict[str, StepResult]) -> bool:
        """Check if step dependencies are met"""
        for dep in step.dependencies:
            if dep not in results:
                return False
            if results[dep].status not in [StepStatus.COMPLETED, StepStatus.SKIPPED]:
                return False
        return True

    def _execute_step(self, step: PipelineStep, context: Dict[str, Any],
                      previous_results: Dict[str, StepResult]) -> StepResult:
        """Execute a single pipeline step"""
        start_time = datetime.now()
        self.logger.info(f"Executing step: {step.name}")

        attempt = 0
        while True:
            attempt += 1
            try:
                output = step.function(context, previous_results)
                return StepResult(
                    step_name=step.name,
                    status=StepStatus.COMPLETED,
                    start_time=start_time,
                    end_time=datetime.now(),
                    output=output,
                    attempts=attempt
                )

            except DataSourceError as e:
                if e.retryable and attempt <= step.max_retries:
                    self.logger.warning(
                        f"Step {step.name} hit a transient error (attempt {attempt}): {e}; retrying"
                    )
                    step.retry_count = attempt
                    if step.retry_delay:
                        time.sleep(step.retry_delay * attempt)
                    continue
                return self._failed(step, start_time, e, attempt)

            except Exception as e:
                return self._failed(step, start_time, e, attempt)

    def _failed(self, step: PipelineStep, start_time: datetime,
                error: Exception, attempt: int) -> StepResult:
        self.logger.error(f"Step {step.name} failed (attempt {attempt}): {error}")
        return StepResult(
            step_name=step.name,
            status=StepStatus.FAILED,
            start_time=start_time,
            end_time=datetime.now(),
            error=f"{type(error).__name__}: {error}",
            exception=error,
            attempts=attempt
        )


class ChoroplethPipeline(Pipeline):
    """
    Loaders -> spatial join -> aggregation -> merge -> render

    The merged tract dataset and its diagnostics are the pipeline's final
    output whether or not the optional render and save steps succeed.
    """

    def __init__(self, config: RunConfig):
        super().__init__("choropleth")
        self.config = config
        self.polygon_loader = PolygonLoader(timeout=config.timeout)
        self.table_loader = TabularLoader(timeout=config.timeout)
        self._setup_steps()

    def _setup_steps(self):
        retries = self.config.max_retries

        self.add_step(PipelineStep(
            name="load_polygons",
            function=self._load_polygons_step,
            max_retries=retries,
            retry_delay=1.0
        ))

        self.add_step(PipelineStep(
            name="load_tables",
            function=self._load_tables_step,
            max_retries=retries,
            retry_delay=1.0
        ))

        self.add_step(PipelineStep(
            name="join_points",
            function=self._join_points_step,
            dependencies=["load_polygons", "load_tables"],
            max_retries=0
        ))

        self.add_step(PipelineStep(
            name="aggregate",
            function=self._aggregate_step,
            dependencies=["join_points"],
            max_retries=0
        ))

        self.add_step(PipelineStep(
            name="merge",
            function=self._merge_step,
            dependencies=["aggregate"],
            max_retries=0
        ))

        self.add_step(PipelineStep(
            name="render",
            function=self._render_step,
            dependencies=["merge"],
            optional=True,
            max_retries=0
        ))

        self.add_step(PipelineStep(
            name="save_outputs",
            function=self._save_outputs_step,
            dependencies=["merge"],
            optional=True,
            max_retries=0
        ))

    def run(self, context: Optional[Dict[str, Any]] = None) -> PipelineResult:
        """Execute and return a result whose final output is the merge output"""
        try:
            result = self.execute(context or {})
        finally:
            self.polygon_loader.cleanup()
            self.table_loader.cleanup()
        merge_result = result.step_results.get('merge')
        if merge_result is not None and merge_result.status == StepStatus.COMPLETED:
            result.final_output = merge_result.output
        else:
            result.final_output = None
        return result

    def _load_polygons_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """Load and validate tract polygons"""
        cfg = self.config.polygons
        polygons = self.polygon_loader.load(
            self.config.resolve(cfg.source),
            cfg.id_field,
            layer=cfg.layer,
            order_field=cfg.order_field
        )
        if cfg.crs is not None:
            polygons = polygons.to_crs(cfg.crs)

        is_valid, errors = DataValidator.validate_polygon_data(polygons)
        for error in errors:
            self.logger.warning(f"Polygon data: {error}")

        return {'polygons': polygons, 'polygons_valid': is_valid, 'record_count': len(polygons)}

    def _load_tables_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """Load point and tract-level tables"""
        point_tables = {}
        for point_cfg in self.config.points:
            point_tables[point_cfg.name] = self.table_loader.load(
                self.config.resolve(point_cfg.source),
                dtype=point_cfg.dtype or None,
                filters=point_cfg.filters,
                name=point_cfg.name
            )

        tables = {}
        for table_cfg in self.config.tables:
            dataset = self.table_loader.load(
                self.config.resolve(table_cfg.source),
                dtype=table_cfg.dtype or None,
                filters=table_cfg.filters,
                name=table_cfg.name
            )
            if table_cfg.fields:
                dataset = dataset.select([table_cfg.key_field] + list(table_cfg.fields))
            tables[table_cfg.name] = dataset

        return {'point_tables': point_tables, 'tables': tables}

    def _join_points_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """Assign every point table to tracts"""
        polygons: PolygonDataset = previous_results['load_polygons'].output['polygons']
        point_tables = previous_results['load_tables'].output['point_tables']

        engine = SpatialJoinEngine()
        assignments = {}
        points_by_name = {}
        ambiguous = {}
        for point_cfg in self.config.points:
            points = DataTransformer.points_from_table(
                point_tables[point_cfg.name], point_cfg.x_field, point_cfg.y_field, point_cfg.crs
            )
            if points.crs != polygons.crs:
                self.logger.info(f"Reprojecting {point_cfg.name} from {points.crs} to {polygons.crs}")
                points = points.to_crs(polygons.crs)
            assignments[point_cfg.name] = engine.assign(points, polygons)
            points_by_name[point_cfg.name] = points
            ambiguous[point_cfg.name] = engine.last_ambiguous_count

        return {'assignments': assignments, 'points': points_by_name, 'ambiguous_points': ambiguous}

    def _aggregate_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """Zero-filled counts per tract for each point table"""
        polygons = previous_results['load_polygons'].output['polygons']
        assignments = previous_results['join_points'].output['assignments']

        aggregator = Aggregator()
        results = {}
        for point_cfg in self.config.points:
            results[point_cfg.name] = aggregator.aggregate(
                assignments[point_cfg.name], polygons, value_field=point_cfg.count_field
            )
            self.logger.info(
                f"{point_cfg.name}: {results[point_cfg.name].total} points in tracts, "
                f"{results[point_cfg.name].unmatched_count} unmatched"
            )

        return {'aggregations': results}

    def _merge_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """Merge counts, tract-level tables and rates onto the polygons, in tract order"""
        dataset: PolygonDataset = previous_results['load_polygons'].output['polygons']
        aggregations = previous_results['aggregate'].output['aggregations']
        tables = previous_results['load_tables'].output['tables']

        merger = AttributeMerge()
        unmatched_keys = {}

        for name, result in aggregations.items():
            counts = result.to_frame(id_field='__tract__')
            dataset = merger.merge(dataset, counts, dataset.id_field, '__tract__', mode=MergeMode.LEFT)

        for table_cfg in self.config.tables:
            dataset = merger.merge(
                dataset,
                tables[table_cfg.name],
                dataset.id_field,
                table_cfg.key_field,
                mode=table_cfg.mode,
                duplicates=table_cfg.duplicates
            )
            unmatched_keys[table_cfg.name] = len(merger.last_unmatched_keys)

        for rate_cfg in self.config.rates:
            dataset = DataTransformer.rate(
                dataset, rate_cfg.numerator, rate_cfg.denominator, rate_cfg.out_field, rate_cfg.per
            )

        diagnostics = {
            'tracts': len(dataset),
            'unmatched_points': {name: r.unmatched_count for name, r in aggregations.items()},
            'zero_filled_tracts': {name: r.zero_filled for name, r in aggregations.items()},
            'ambiguous_points': previous_results['join_points'].output['ambiguous_points'],
            'unmatched_tracts_by_table': unmatched_keys
        }
        return {'dataset': dataset, 'diagnostics': diagnostics}

    def _render_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """Write configured static and interactive maps"""
        render_cfg = self.config.render
        output_cfg = self.config.output
        if render_cfg is None:
            return {'files': []}

        dataset = previous_results['merge'].output['dataset']
        overlays = previous_results['join_points'].output['points']
        out_dir = Path(self.config.resolve(output_cfg.directory))

        files = []
        if output_cfg.static_map:
            files.append(render_static(dataset, render_cfg, out_dir / output_cfg.static_map))
        if output_cfg.interactive_map:
            render_interactive(dataset, render_cfg, out_dir / output_cfg.interactive_map,
                               overlays=overlays)
            files.append(out_dir / output_cfg.interactive_map)
        return {'files': files}

    def _save_outputs_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """Save the merged tracts as GeoJSON and CSV"""
        output_cfg = self.config.output
        dataset: PolygonDataset = previous_results['merge'].output['dataset']
        out_dir = Path(self.config.resolve(output_cfg.directory))
        out_dir.mkdir(parents=True, exist_ok=True)

        files = []
        if output_cfg.geojson:
            path = out_dir / output_cfg.geojson
            dataset.frame.to_file(path, driver='GeoJSON')
            files.append(path)
        if output_cfg.table:
            path = out_dir / output_cfg.table
            dataset.attribute_table().to_csv(path, index=False)
            files.append(path)
        return {'files': files}
