"""Core type definitions for the RECIST timeline pipeline.

This module defines the column names, enums and dataclasses shared by the
reconcilers, the burden metrics engine and the timeline assembler.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import pandas as pd


# Source / key columns
PATIENT = "patient"
VISIT = "visit_index"
DATE = "evaluation_date"
LONGEST_DIAMETER = "longest_diameter"
HAS_NON_TARGET = "has_non_target_lesion"
TREATMENT = "treatment_administered"

# Burden columns
SLD = "sld"
BASELINE_SLD = "baseline_sld"
CHANGE_FROM_BASELINE = "change_from_baseline"
PCT_CHANGE_FROM_BASELINE = "pct_change_from_baseline"
NADIR = "nadir"
CHANGE_FROM_NADIR = "change_from_nadir"
PCT_CHANGE_FROM_NADIR = "pct_change_from_nadir"

# Lesion flags
HAS_MEASURABLE_AT_BASELINE = "has_measurable_lesion_at_baseline"
HAS_NON_MEASURABLE_ONLY = "has_non_measurable_lesion_only"
HAS_NEW_LESION = "has_new_lesion"

# Response columns
TARGET_RESPONSE = "target_response"
NON_TARGET_RESPONSE = "non_target_response"
OVERALL_RESPONSE = "overall_response"

SITE = "site"

BASELINE_VISIT = 0


class ResponseCode(str, Enum):
    """Canonical overall-response categories.

    Members compare equal to their string value, so a normalized column can
    hold plain strings and still be matched against the enum.
    """
    CR = "CR"                       # Complete Response
    PR = "PR"                       # Partial Response
    SD = "SD"                       # Stable Disease
    NON_CR_NON_PD = "Non-CR/Non-PD"  # Non-target disease only, neither CR nor PD
    PD = "PD"                       # Progressive Disease

    @classmethod
    def all(cls) -> list["ResponseCode"]:
        """Return all codes, best response first."""
        return [cls.CR, cls.PR, cls.SD, cls.NON_CR_NON_PD, cls.PD]

    @property
    def slug(self) -> str:
        """Column-safe lowercase name, e.g. ``non_cr_non_pd``."""
        return self.name.lower()

    @property
    def indicator_column(self) -> str:
        return f"is_{self.slug}"

    @property
    def marker_column(self) -> str:
        return f"{self.slug}_visit"

    @property
    def rank(self) -> int:
        """Position in the best-to-worst ordering (0 is best)."""
        return ResponseCode.all().index(self)


INDICATOR_COLUMNS = [code.indicator_column for code in ResponseCode.all()]
MARKER_COLUMNS = [code.marker_column for code in ResponseCode.all()]

DEFAULT_PASSTHROUGH_RESPONSE_COLUMNS = [
    TARGET_RESPONSE,
    NON_TARGET_RESPONSE,
    "immune_target_response",
    "immune_non_target_response",
    "immune_new_lesion_response",
    "immune_overall_response",
]

TIMELINE_COLUMNS = [
    PATIENT,
    VISIT,
    DATE,
    SLD,
    BASELINE_SLD,
    CHANGE_FROM_BASELINE,
    PCT_CHANGE_FROM_BASELINE,
    NADIR,
    CHANGE_FROM_NADIR,
    PCT_CHANGE_FROM_NADIR,
    HAS_MEASURABLE_AT_BASELINE,
    HAS_NON_MEASURABLE_ONLY,
    HAS_NEW_LESION,
    OVERALL_RESPONSE,
    *INDICATOR_COLUMNS,
    *MARKER_COLUMNS,
    SITE,
]


class KeyCardinalityError(ValueError):
    """Raised when a reconciled table holds more than one row per key."""


@dataclass(frozen=True)
class ExclusionRule:
    """A named, patient-scoped data correction.

    Rows of ``patient`` with an undefined SLD are dropped unless their visit
    index equals ``keep_visit``.

    Attributes:
        name: Identifier used in logs and audit output
        patient: The single patient the rule applies to
        keep_visit: Visit index that stays even when its SLD is undefined
        reason: Free-text description of the anomaly being corrected
    """
    name: str
    patient: str
    keep_visit: Optional[int] = None
    reason: str = ""

    def __post_init__(self):
        """Validate the rule identifies a rule name and a patient."""
        if not self.name:
            raise ValueError("exclusion rule needs a name")
        if not self.patient:
            raise ValueError(f"exclusion rule {self.name!r} needs a patient")

    @classmethod
    def from_dict(cls, d: dict) -> "ExclusionRule":
        keep_visit = d.get("keep_visit")
        return cls(
            name=str(d.get("name", "")),
            patient=str(d.get("patient", "")),
            keep_visit=int(keep_visit) if keep_visit is not None else None,
            reason=str(d.get("reason", "")),
        )


@dataclass
class SourceTables:
    """The raw per-visit record sets the pipeline consumes.

    Attributes:
        baseline_measurable: patient, evaluation_date, longest_diameter
        baseline_non_measurable: patient, evaluation_date, has_non_target_lesion
        post_measurable: patient, visit_index, evaluation_date, longest_diameter
        post_non_measurable: patient, visit_index, evaluation_date
        new_lesions: patient, visit_index, evaluation_date
        responses: patient, visit_index, overall_response and passthrough fields
        cohort: patient, visit_index, treatment_administered
    """
    baseline_measurable: pd.DataFrame
    baseline_non_measurable: pd.DataFrame
    post_measurable: pd.DataFrame
    post_non_measurable: pd.DataFrame
    new_lesions: pd.DataFrame
    responses: pd.DataFrame
    cohort: pd.DataFrame = field(default_factory=pd.DataFrame)
