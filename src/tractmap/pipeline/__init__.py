"""Pipeline orchestration module"""

from .orchestrator import (
    Pipeline,
    PipelineStep,
    PipelineResult,
    StepResult,
    StepStatus,
    ChoroplethPipeline
)

__all__ = [
    'Pipeline',
    'PipelineStep',
    'PipelineResult',
    'StepResult',
    'StepStatus',
    'ChoroplethPipeline'
]
