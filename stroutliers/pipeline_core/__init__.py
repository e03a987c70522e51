"""
Pipeline infrastructure for stroutliers.

This package provides the core abstractions of a chromosome run:
- PipelineContext: Container for all run state and artifacts
- Stage: Abstract base class for all pipeline steps
- Workspace: Node-local scratch directory management
- PipelineRunner: Executes stages in dependency order
"""

from .context import PipelineContext
from .runner import PipelineRunner
from .stage import Stage
from .workspace import Workspace

__all__ = [
    "PipelineContext",
    "Stage",
    "Workspace",
    "PipelineRunner",
]
