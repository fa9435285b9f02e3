"""Post-baseline lesion reconciliation.

Post-baseline target and non-target tables are reduced to one row per
(patient, visit_index) each and full-outer-joined on
(patient, visit_index, evaluation_date). The date is part of the key: when
the two tables disagree on the date of a visit, the visit yields two rows.

New lesions are reduced to the first source row per patient. Source order
decides, not the date or the visit index.
"""

import logging
from dataclasses import dataclass

import pandas as pd

from recist_timeline.reconcile.common import assert_unique_keys, coerce_keys, sum_diameters
from recist_timeline.types import DATE, HAS_NEW_LESION, LONGEST_DIAMETER, PATIENT, SLD, VISIT

logger = logging.getLogger(__name__)

VISIT_KEYS = [PATIENT, VISIT]
DATED_VISIT_KEYS = [PATIENT, VISIT, DATE]


@dataclass
class LongitudinalLesions:
    """Reconciled post-baseline lesion data.

    Attributes:
        visits: One row per (patient, visit_index, evaluation_date) with ``sld``
        new_lesions: One row per patient: the first new-lesion detection,
            with ``has_new_lesion`` True
    """
    visits: pd.DataFrame
    new_lesions: pd.DataFrame


def reconcile_post_baseline(measurable: pd.DataFrame, non_measurable: pd.DataFrame) -> pd.DataFrame:
    """Merge post-baseline target and non-target rows into per-visit rows.

    Args:
        measurable: patient, visit_index, evaluation_date, longest_diameter;
            one row per lesion
        non_measurable: patient, visit_index, evaluation_date

    Returns:
        DataFrame with patient, visit_index, evaluation_date, sld
    """
    m = coerce_keys(measurable)
    m[SLD] = sum_diameters(m, VISIT_KEYS, LONGEST_DIAMETER)
    m = m.drop_duplicates(subset=VISIT_KEYS, keep="first")[DATED_VISIT_KEYS + [SLD]]

    nm = coerce_keys(non_measurable)
    nm = nm.drop_duplicates(subset=VISIT_KEYS, keep="first")[DATED_VISIT_KEYS]

    visits = m.merge(nm, on=DATED_VISIT_KEYS, how="outer")
    visits[SLD] = pd.to_numeric(visits[SLD], errors="coerce")
    visits = visits.sort_values(VISIT_KEYS, kind="mergesort").reset_index(drop=True)

    split = visits.duplicated(subset=VISIT_KEYS, keep=False)
    if split.any():
        logger.warning(
            f"{int(split.sum())} post-baseline rows share a visit but not a date; kept as separate rows"
        )

    assert_unique_keys(visits, DATED_VISIT_KEYS, "post-baseline reconciliation")
    logger.info(
        f"Post-baseline reconciled: {len(visits)} visits for {visits[PATIENT].nunique()} patients"
    )
    return visits


def first_new_lesions(new_lesions: pd.DataFrame) -> pd.DataFrame:
    """Keep the first new-lesion row per patient and flag it.

    Args:
        new_lesions: patient, visit_index, evaluation_date; any number of rows

    Returns:
        DataFrame with patient, visit_index, evaluation_date, has_new_lesion
    """
    first = coerce_keys(new_lesions).drop_duplicates(subset=PATIENT, keep="first")
    first = first[DATED_VISIT_KEYS].copy()
    first[HAS_NEW_LESION] = True

    dropped = len(new_lesions) - len(first)
    if dropped:
        logger.debug(f"New lesions: ignoring {dropped} rows after each patient's first detection")

    assert_unique_keys(first, [PATIENT], "new-lesion detection")
    return first.reset_index(drop=True)


def reconcile_longitudinal(
    measurable: pd.DataFrame,
    non_measurable: pd.DataFrame,
    new_lesions: pd.DataFrame,
) -> LongitudinalLesions:
    """Reconcile all post-baseline lesion tables."""
    return LongitudinalLesions(
        visits=reconcile_post_baseline(measurable, non_measurable),
        new_lesions=first_new_lesions(new_lesions),
    )
