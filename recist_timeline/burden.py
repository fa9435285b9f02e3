"""Tumor burden metrics.

For each patient, over the visit-ordered sequence of SLD observations:

    baseline_sld             = SLD at visit 0 (broadcast to every visit)
    change_from_baseline     = SLD - baseline_sld
    pct_change_from_baseline = 100 * change_from_baseline / baseline_sld
    nadir                    = SLD at visit 0, else min(SLD[k], SLD[k-1])
    change_from_nadir        = SLD - nadir
    pct_change_from_nadir    = 100 * change_from_nadir / nadir

The nadir is a one-step pairwise minimum against the preceding visit, not
the running minimum over all prior visits that RECIST 1.1 uses. Percent
values are on a 0-100 scale and are not clamped. Divisions by zero or by a
missing value give NaN.

Each patient is processed independently; no state crosses patients.
"""

import logging

import numpy as np
import pandas as pd

from recist_timeline.types import (
    BASELINE_SLD,
    BASELINE_VISIT,
    CHANGE_FROM_BASELINE,
    CHANGE_FROM_NADIR,
    NADIR,
    PATIENT,
    PCT_CHANGE_FROM_BASELINE,
    PCT_CHANGE_FROM_NADIR,
    SLD,
    VISIT,
)

logger = logging.getLogger(__name__)

METRIC_COLUMNS = [
    BASELINE_SLD,
    CHANGE_FROM_BASELINE,
    PCT_CHANGE_FROM_BASELINE,
    NADIR,
    CHANGE_FROM_NADIR,
    PCT_CHANGE_FROM_NADIR,
]


def guarded_divide(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    """Elementwise ``numerator / denominator``, NaN where the denominator is 0 or NaN."""
    numerator = pd.to_numeric(numerator, errors="coerce").astype(float)
    denominator = pd.to_numeric(denominator, errors="coerce").astype(float)
    return numerator / denominator.where(denominator != 0)


def pairwise_nadir(sld: pd.Series, visits: pd.Series) -> pd.Series:
    """One-step nadir over a single patient's SLD values.

    The comparison is against the preceding visit index present for the
    patient, not the preceding row: a visit split across two dates
    contributes its first defined SLD.

    Args:
        sld: SLD per row
        visits: Visit index per row, aligned with ``sld``

    Returns:
        Nadir per row; NaN where the row's own SLD is NaN. A missing
        preceding SLD is skipped rather than propagated, and so is the
        comparison for rows whose visit index is undefined.
    """
    sld = sld.astype(float)
    keyed = visits.astype(float)

    per_visit = sld.groupby(keyed).first()
    previous = keyed.map(per_visit.shift(1))

    nadir = pd.Series(np.fmin(sld.to_numpy(), previous.to_numpy()), index=sld.index)
    nadir = nadir.where(keyed != BASELINE_VISIT, sld)
    return nadir.where(sld.notna())


def patient_burden_metrics(visits: pd.DataFrame) -> pd.DataFrame:
    """Compute burden metrics for one patient's visits.

    Args:
        visits: All rows of a single patient, with ``visit_index`` and ``sld``

    Returns:
        Copy ordered by visit index with METRIC_COLUMNS added
    """
    out = visits.sort_values(VISIT, kind="mergesort").copy()
    sld = pd.to_numeric(out[SLD], errors="coerce").astype(float)

    baseline = sld[out[VISIT].astype(float) == BASELINE_VISIT]
    baseline_sld = baseline.iloc[0] if len(baseline) > 0 else np.nan

    out[BASELINE_SLD] = baseline_sld
    out[CHANGE_FROM_BASELINE] = sld - out[BASELINE_SLD]
    out[PCT_CHANGE_FROM_BASELINE] = guarded_divide(100 * out[CHANGE_FROM_BASELINE], out[BASELINE_SLD])

    out[NADIR] = pairwise_nadir(sld, out[VISIT])
    out[CHANGE_FROM_NADIR] = sld - out[NADIR]
    out[PCT_CHANGE_FROM_NADIR] = guarded_divide(100 * out[CHANGE_FROM_NADIR], out[NADIR])

    return out


def compute_burden_metrics(timeline: pd.DataFrame) -> pd.DataFrame:
    """Apply ``patient_burden_metrics`` to every patient in ``timeline``.

    Returns:
        Rows ordered by patient then visit index, with METRIC_COLUMNS added
    """
    if timeline.empty:
        out = timeline.copy()
        for column in METRIC_COLUMNS:
            out[column] = pd.Series(dtype=float)
        return out

    parts = [patient_burden_metrics(group) for _, group in timeline.groupby(PATIENT, sort=True)]
    out = pd.concat(parts, ignore_index=True)

    logger.debug(
        f"Burden metrics computed for {len(parts)} patients; "
        f"{int(out[BASELINE_SLD].isna().groupby(out[PATIENT]).all().sum())} without a baseline SLD"
    )
    return out
