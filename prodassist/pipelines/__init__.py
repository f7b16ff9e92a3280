"""
ProdAssist Pipelines

Arc generation runs: one-time auto-generation and user-triggered regeneration.
"""

from .base_pipeline import (
    GenerationPipeline,
    GenerationStep,
    PipelineResult,
    PipelineStatus,
    ProgressTracker,
    StepStatus,
)
from .context import ArcGenerationContext
from .arc_autogen_pipeline import ArcAutoGenerationPipeline
from .regenerate_all import RegenerateAllPipeline, RegenerationResult, parse_sections
