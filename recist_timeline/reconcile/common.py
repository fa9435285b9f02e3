"""Helpers shared by the baseline and longitudinal reconcilers."""

import logging
from typing import Iterable, Sequence

import pandas as pd

from recist_timeline.types import DATE, VISIT, KeyCardinalityError

logger = logging.getLogger(__name__)


def assert_unique_keys(df: pd.DataFrame, keys: Sequence[str], stage: str) -> None:
    """Raise KeyCardinalityError if any key combination occurs more than once.

    Missing key values compare equal to each other here, matching how the
    reconcilers' merges pair them.

    Args:
        df: Table to check
        keys: Columns forming the key
        stage: Name of the producing stage, used in the message
    """
    duplicated = df.duplicated(subset=list(keys), keep=False)
    if duplicated.any():
        sample = df.loc[duplicated, list(keys)].head(5).to_dict("records")
        raise KeyCardinalityError(
            f"{stage}: {int(duplicated.sum())} rows share a key on {list(keys)}, e.g. {sample}"
        )


def is_affirmative(value, affirmative_values: Iterable[str]) -> bool:
    """Interpret a boolean-like source flag ("Yes", "Y", True, 1, ...)."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if not isinstance(value, str) and pd.isna(value):
        return False
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip().lower() in set(affirmative_values)


def sum_diameters(lesions: pd.DataFrame, keys: list[str], diameter_col: str) -> pd.Series:
    """Per-row sum of ``diameter_col`` over the row's key group.

    A group whose diameters are all missing sums to NaN rather than 0.
    """
    diameters = pd.to_numeric(lesions[diameter_col], errors="coerce")
    return diameters.groupby([lesions[k] for k in keys], dropna=False).transform("sum", min_count=1)


def to_visit_index(values: pd.Series) -> pd.Series:
    """Visit indices as nullable ``Int64``; missing or non-integer values become <NA>."""
    visits = pd.to_numeric(values, errors="coerce").astype(float)
    return visits.where(visits.mod(1) == 0).astype("Int64")


def coerce_keys(df: pd.DataFrame) -> pd.DataFrame:
    """Copy of ``df`` with the evaluation date parsed and the visit index as Int64.

    Unparseable dates become NaT and missing visit indices <NA>; the rows
    are kept either way.
    """
    out = df.copy()
    out[DATE] = pd.to_datetime(out[DATE], errors="coerce")
    if VISIT in out.columns:
        out[VISIT] = to_visit_index(out[VISIT])
    return out
