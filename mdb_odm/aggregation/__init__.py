"""
Aggregation pipeline synthesis.
"""

from .pipeline import is_pipeline, is_pipeline_operators, pipeline_factory
from .stages import (
    Pipeline,
    PipelineStage,
    group_stage_factory,
    lookup_stage_factory,
    match_stage_factory,
    project_stage_factory,
    sort_stage_factory,
)

__all__ = [
    "Pipeline",
    "PipelineStage",
    "match_stage_factory",
    "lookup_stage_factory",
    "group_stage_factory",
    "sort_stage_factory",
    "project_stage_factory",
    "pipeline_factory",
    "is_pipeline",
    "is_pipeline_operators",
]
