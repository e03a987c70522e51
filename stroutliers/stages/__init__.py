"""
Pipeline stages for stroutliers.

This package contains all stage implementations organized by category:
- setup_stages: Input discovery and tool resolution stages
- processing_stages: Chromosome extraction and engine invocation stages
- output_stages: Aggregation, archiving and summary stages
"""

from .output_stages import PerSampleArchiveStage, ResultAggregationStage, RunSummaryStage
from .processing_stages import (
    ChromosomeFilterStage,
    OutliersInvocationStage,
    UnplacedResolutionStage,
)
from .setup_stages import InputCatalogStage, ToolResolutionStage

__all__ = [
    # Setup stages
    "InputCatalogStage",
    "ToolResolutionStage",
    # Processing stages
    "ChromosomeFilterStage",
    "UnplacedResolutionStage",
    "OutliersInvocationStage",
    # Output stages
    "ResultAggregationStage",
    "PerSampleArchiveStage",
    "RunSummaryStage",
]
