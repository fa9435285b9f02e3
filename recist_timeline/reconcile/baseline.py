"""Baseline reconciliation.

Merges the measurable (target) and non-measurable (non-target) baseline
lesion tables into a single visit-0 record per cohort patient:

- measurable lesions are summed into the baseline SLD, one row per patient
- non-measurable rows are kept only when the non-target flag is affirmative
- the two are full-outer-joined on (patient, visit_index)
- the evaluation date prefers the measurable record
- patients outside the cohort are dropped
"""

import logging
from typing import Iterable

import pandas as pd

from recist_timeline.reconcile.common import (
    assert_unique_keys,
    coerce_keys,
    is_affirmative,
    sum_diameters,
)
from recist_timeline.types import (
    BASELINE_VISIT,
    DATE,
    HAS_MEASURABLE_AT_BASELINE,
    HAS_NON_MEASURABLE_ONLY,
    HAS_NON_TARGET,
    LONGEST_DIAMETER,
    PATIENT,
    SLD,
    VISIT,
)

logger = logging.getLogger(__name__)

BASELINE_COLUMNS = [PATIENT, VISIT, DATE, SLD, HAS_MEASURABLE_AT_BASELINE, HAS_NON_MEASURABLE_ONLY]

_NON_MEASURABLE_DATE = f"{DATE}_non_measurable"


def _measurable_baseline(measurable: pd.DataFrame) -> pd.DataFrame:
    """One row per patient carrying the summed baseline diameters."""
    m = coerce_keys(measurable)
    m[SLD] = sum_diameters(m, [PATIENT], LONGEST_DIAMETER)
    m = m.drop_duplicates(subset=PATIENT, keep="first").copy()
    m[VISIT] = BASELINE_VISIT
    m[HAS_MEASURABLE_AT_BASELINE] = True
    return m[[PATIENT, VISIT, DATE, SLD, HAS_MEASURABLE_AT_BASELINE]]


def _non_measurable_baseline(non_measurable: pd.DataFrame, affirmative_values: Iterable[str]) -> pd.DataFrame:
    """One row per patient whose non-target flag is affirmative."""
    nm = coerce_keys(non_measurable).drop_duplicates(subset=PATIENT, keep="first")
    flagged = nm[HAS_NON_TARGET].map(lambda v: is_affirmative(v, affirmative_values)).astype(bool)
    nm = nm[flagged].copy()
    nm[VISIT] = BASELINE_VISIT
    return nm[[PATIENT, VISIT, DATE]]


def reconcile_baseline(
    measurable: pd.DataFrame,
    non_measurable: pd.DataFrame,
    cohort: Iterable[str],
    affirmative_values: Iterable[str] = ("yes", "y", "true", "1"),
) -> pd.DataFrame:
    """Build the visit-0 record for every cohort patient with baseline data.

    Args:
        measurable: Baseline target lesions (patient, evaluation_date,
            longest_diameter), one row per lesion
        non_measurable: Baseline non-target entries (patient, evaluation_date,
            has_non_target_lesion)
        cohort: Patients admitted to the analysis
        affirmative_values: Lower-cased strings read as a "yes" flag

    Returns:
        DataFrame with BASELINE_COLUMNS, one row per patient
    """
    m = _measurable_baseline(measurable)
    nm = _non_measurable_baseline(non_measurable, affirmative_values)

    merged = m.merge(
        nm.rename(columns={DATE: _NON_MEASURABLE_DATE}),
        on=[PATIENT, VISIT],
        how="outer",
    )
    merged[DATE] = merged[DATE].where(merged[DATE].notna(), merged[_NON_MEASURABLE_DATE])
    merged = merged.drop(columns=[_NON_MEASURABLE_DATE])

    merged[HAS_MEASURABLE_AT_BASELINE] = merged[HAS_MEASURABLE_AT_BASELINE].astype("boolean")
    # Presence flag: no measurable record at all, regardless of the raw non-target value
    merged[HAS_NON_MEASURABLE_ONLY] = merged[HAS_MEASURABLE_AT_BASELINE].isna()
    merged[SLD] = pd.to_numeric(merged[SLD], errors="coerce")
    merged[VISIT] = merged[VISIT].astype("Int64")

    cohort_ids = set(cohort)
    in_cohort = merged[PATIENT].isin(cohort_ids)
    if (~in_cohort).any():
        logger.info(f"Baseline: dropping {int((~in_cohort).sum())} patients outside the cohort")
    merged = merged[in_cohort].reset_index(drop=True)

    assert_unique_keys(merged, [PATIENT], "baseline reconciliation")
    logger.info(f"Baseline reconciled: {len(merged)} patients")

    return merged[BASELINE_COLUMNS]
