"""RECIST timeline: tumor-measurement reconciliation and burden metrics.

Merges baseline, post-baseline and new-lesion record sets with clinician
response assessments into one canonical per-patient, per-visit table with
sum-of-diameters, nadir and percent-change metrics.
"""

__version__ = "0.1.0"
__author__ = "RECIST Timeline Team"

from recist_timeline.types import (
    ResponseCode,
    ExclusionRule,
    SourceTables,
    KeyCardinalityError,
)
from recist_timeline.config import PipelineConfig
from recist_timeline.assembler import TimelineAssembler, TimelineResult, build_timeline

__all__ = [
    "ResponseCode",
    "ExclusionRule",
    "SourceTables",
    "KeyCardinalityError",
    "PipelineConfig",
    "TimelineAssembler",
    "TimelineResult",
    "build_timeline",
]
