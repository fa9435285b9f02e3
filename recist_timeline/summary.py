"""Per-patient summary of the canonical timeline.

One row per patient with the values the reporting layer plots: best
percent change from baseline (waterfall), best overall response, and the
first progression and new-lesion visits (swimmer lanes).
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd

from recist_timeline.response import canonical_code
from recist_timeline.types import (
    BASELINE_SLD,
    BASELINE_VISIT,
    DATE,
    HAS_NEW_LESION,
    OVERALL_RESPONSE,
    PATIENT,
    PCT_CHANGE_FROM_BASELINE,
    SITE,
    VISIT,
    ResponseCode,
)

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    PATIENT,
    SITE,
    "n_visits",
    BASELINE_SLD,
    "best_pct_change_from_baseline",
    "best_overall_response",
    "first_pd_visit",
    "first_new_lesion_visit",
    "last_evaluation_date",
]


def best_response(values) -> Optional[str]:
    """Best canonical code among ``values`` (CR best, PD worst); None if none is canonical."""
    codes = [c for c in map(canonical_code, values) if c is not None]
    if not codes:
        return None
    return min(codes, key=lambda c: c.rank).value


def _summarize_patient(patient: str, visits: pd.DataFrame) -> dict:
    post = visits[visits[VISIT].astype(float) != BASELINE_VISIT]
    pd_visits = visits.loc[visits[ResponseCode.PD.indicator_column], VISIT]
    new_lesion_visits = visits.loc[visits[HAS_NEW_LESION], VISIT]

    return {
        PATIENT: patient,
        SITE: visits[SITE].iloc[0],
        "n_visits": int(post[VISIT].nunique()),
        BASELINE_SLD: visits[BASELINE_SLD].iloc[0],
        "best_pct_change_from_baseline": post[PCT_CHANGE_FROM_BASELINE].min(),
        "best_overall_response": best_response(post[OVERALL_RESPONSE]),
        "first_pd_visit": pd_visits.min() if len(pd_visits) else np.nan,
        "first_new_lesion_visit": new_lesion_visits.min() if len(new_lesion_visits) else np.nan,
        "last_evaluation_date": visits[DATE].max(),
    }


def summarize_patients(timeline: pd.DataFrame) -> pd.DataFrame:
    """Summarize a canonical timeline table per patient.

    Args:
        timeline: Output of ``TimelineAssembler.assemble(...).table``

    Returns:
        DataFrame with SUMMARY_COLUMNS, one row per patient
    """
    rows = [
        _summarize_patient(patient, visits)
        for patient, visits in timeline.groupby(PATIENT, sort=True)
    ]
    summary = pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
    logger.info(f"Summarized {len(summary)} patients")
    return summary
