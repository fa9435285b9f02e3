"""Timeline assembly.

The assembler runs every stage in order and produces the canonical
per-patient, per-visit table:

1. Full outer join of reconciled baseline and post-baseline visits on
   (patient, visit_index, evaluation_date, sld)
2. Per-patient tumor burden metrics
3. Full outer join with first new-lesion detections; other visits get
   ``has_new_lesion = False``
4. Full outer join with normalized responses on (patient, visit_index);
   rows without an evaluation date are dropped
5. Cohort restriction
6. Named exclusion rules
7. Response indicators, visit markers and site code
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

import pandas as pd

from recist_timeline.burden import compute_burden_metrics
from recist_timeline.config import PipelineConfig
from recist_timeline.exclusions import ExclusionReport, apply_exclusions
from recist_timeline.reconcile.baseline import reconcile_baseline
from recist_timeline.reconcile.common import assert_unique_keys, to_visit_index
from recist_timeline.reconcile.longitudinal import (
    DATED_VISIT_KEYS,
    VISIT_KEYS,
    reconcile_longitudinal,
)
from recist_timeline.response import ResponseNormalizer, assign_response_markers
from recist_timeline.types import (
    DATE,
    HAS_MEASURABLE_AT_BASELINE,
    HAS_NEW_LESION,
    HAS_NON_MEASURABLE_ONLY,
    OVERALL_RESPONSE,
    PATIENT,
    SITE,
    SLD,
    TIMELINE_COLUMNS,
    VISIT,
    SourceTables,
)

logger = logging.getLogger(__name__)


@dataclass
class TimelineResult:
    """Output of one pipeline run.

    Attributes:
        table: The canonical timeline, one row per surviving visit
        cohort_size: Number of patients admitted to the analysis
        exclusions: One report per exclusion rule applied
    """
    table: pd.DataFrame
    cohort_size: int
    exclusions: list[ExclusionReport] = field(default_factory=list)

    def summary(self) -> str:
        """Return a human-readable summary of the run."""
        table = self.table
        lines = [
            f"Cohort patients: {self.cohort_size}",
            f"Patients in timeline: {table[PATIENT].nunique()}",
            f"Visits: {len(table)}",
            f"Sites: {table[SITE].nunique()}",
            "",
            "Exclusion rules:",
        ]
        for report in self.exclusions:
            lines.append(f"  {report.rule.name:30s}: {report.count} rows removed")
        if not self.exclusions:
            lines.append("  (none)")
        return "\n".join(lines)


class TimelineAssembler:
    """Builds the canonical timeline from the raw source tables."""

    def __init__(self, config: Optional[PipelineConfig] = None):
        """Initialize the assembler.

        Args:
            config: Pipeline configuration; defaults when None
        """
        self.config = config or PipelineConfig()
        self.normalizer = ResponseNormalizer(self.config.response_labels)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "TimelineAssembler":
        """Create an assembler from a YAML config file."""
        return cls(PipelineConfig.from_yaml(path))

    def _response_table(self, responses: pd.DataFrame) -> pd.DataFrame:
        """Normalized responses restricted to keys, overall response and passthrough fields."""
        normalized = self.normalizer.normalize_table(responses)
        normalized[VISIT] = to_visit_index(normalized[VISIT])
        passthrough = [
            c for c in self.config.passthrough_response_columns
            if c in normalized.columns and c not in VISIT_KEYS and c != OVERALL_RESPONSE
        ]
        normalized = normalized[VISIT_KEYS + [OVERALL_RESPONSE] + passthrough]
        assert_unique_keys(normalized, VISIT_KEYS, "response assessments")
        return normalized

    def assemble(self, tables: SourceTables, cohort: Iterable[str]) -> TimelineResult:
        """Run every stage and return the canonical timeline.

        Args:
            tables: Raw source tables
            cohort: Patients admitted to the analysis

        Returns:
            TimelineResult with the canonical table and exclusion reports
        """
        config = self.config
        cohort = frozenset(cohort)
        logger.info(f"Assembling timeline for a cohort of {len(cohort)} patients")

        baseline = reconcile_baseline(
            tables.baseline_measurable,
            tables.baseline_non_measurable,
            cohort,
            affirmative_values=config.affirmative_values,
        )
        longitudinal = reconcile_longitudinal(
            tables.post_measurable,
            tables.post_non_measurable,
            tables.new_lesions,
        )

        # Step 1: baseline + post-baseline visits
        timeline = baseline.merge(longitudinal.visits, on=[PATIENT, VISIT, DATE, SLD], how="outer")

        # Step 2: burden metrics
        timeline = compute_burden_metrics(timeline)

        # Step 3: new lesions
        timeline = timeline.merge(longitudinal.new_lesions, on=DATED_VISIT_KEYS, how="outer")
        timeline[HAS_NEW_LESION] = timeline[HAS_NEW_LESION].eq(True)

        # Step 4: responses; a visit without an evaluation date did not happen
        timeline = timeline.merge(self._response_table(tables.responses), on=VISIT_KEYS, how="outer")
        undated = timeline[DATE].isna()
        if undated.any():
            logger.info(f"Dropping {int(undated.sum())} rows without an evaluation date")
        timeline = timeline[~undated]

        # Step 5: cohort
        in_cohort = timeline[PATIENT].isin(cohort)
        if (~in_cohort).any():
            logger.info(
                f"Dropping {timeline.loc[~in_cohort, PATIENT].nunique()} patients outside the cohort"
            )
        timeline = timeline[in_cohort]

        # Step 6: named data corrections
        timeline, reports = apply_exclusions(timeline, config.exclusions)

        # Step 7: derived presentation columns
        timeline = assign_response_markers(timeline)
        timeline[SITE] = timeline[PATIENT].astype(str).str[: config.site_code_length]
        timeline[HAS_NEW_LESION] = timeline[HAS_NEW_LESION].astype(bool)
        timeline[HAS_MEASURABLE_AT_BASELINE] = timeline[HAS_MEASURABLE_AT_BASELINE].astype("boolean")
        timeline[HAS_NON_MEASURABLE_ONLY] = timeline[HAS_NON_MEASURABLE_ONLY].astype("boolean")

        timeline = timeline.sort_values([PATIENT, VISIT], kind="mergesort").reset_index(drop=True)
        assert_unique_keys(timeline, DATED_VISIT_KEYS, "timeline assembly")

        extra = [c for c in timeline.columns if c not in TIMELINE_COLUMNS]
        timeline = timeline[TIMELINE_COLUMNS + extra]

        logger.info(
            f"Timeline assembled: {len(timeline)} visits for {timeline[PATIENT].nunique()} patients"
        )
        return TimelineResult(table=timeline, cohort_size=len(cohort), exclusions=reports)


def build_timeline(
    tables: SourceTables,
    cohort: Iterable[str],
    config: Optional[PipelineConfig] = None,
) -> pd.DataFrame:
    """Assemble the canonical timeline table.

    Example:
        >>> table = build_timeline(tables, cohort={"0101-001", "0101-002"})
    """
    return TimelineAssembler(config).assemble(tables, cohort).table
