"""Source table loaders.

Each source record set is a CSV file or an Excel worksheet. The loader
reads it, renames the raw headers to the pipeline's column names, checks
that the required columns are present and coerces the key columns:

- patient ids are kept as stripped strings (leading zeros survive)
- visit indices become nullable integers; a missing index stays <NA>
- diameters become floats
- evaluation dates become datetimes (unparseable values become NaT)
"""

import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from recist_timeline.config import SOURCE_TABLES, PipelineConfig, SourceSpec
from recist_timeline.reconcile.common import to_visit_index
from recist_timeline.types import (
    DATE,
    HAS_NON_TARGET,
    LONGEST_DIAMETER,
    OVERALL_RESPONSE,
    PATIENT,
    TREATMENT,
    VISIT,
    SourceTables,
)

logger = logging.getLogger(__name__)


REQUIRED_COLUMNS: dict[str, list[str]] = {
    "cohort": [PATIENT, VISIT, TREATMENT],
    "baseline_measurable": [PATIENT, DATE, LONGEST_DIAMETER],
    "baseline_non_measurable": [PATIENT, DATE, HAS_NON_TARGET],
    "post_measurable": [PATIENT, VISIT, DATE, LONGEST_DIAMETER],
    "post_non_measurable": [PATIENT, VISIT, DATE],
    "new_lesions": [PATIENT, VISIT, DATE],
    "responses": [PATIENT, VISIT, OVERALL_RESPONSE],
}

EXCEL_SUFFIXES = (".xlsx", ".xlsm")


def read_table(path: Union[str, Path], sheet: Optional[str] = None) -> pd.DataFrame:
    """Read a CSV file or an Excel worksheet with every cell as text.

    Args:
        path: .csv, .xlsx or .xlsm file
        sheet: Worksheet name for Excel files (first sheet when None)

    Returns:
        DataFrame of strings; empty cells are NaN
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Source table not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path, dtype=str)
    elif suffix in EXCEL_SUFFIXES:
        return pd.read_excel(path, sheet_name=sheet if sheet is not None else 0, dtype=str)
    else:
        raise ValueError(f"Unsupported file format: {suffix}")


def coerce_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Coerce the known key and measurement columns to their working types."""
    out = df.copy()
    if PATIENT in out.columns:
        out[PATIENT] = out[PATIENT].map(lambda v: v.strip() if isinstance(v, str) else v)
    if VISIT in out.columns:
        out[VISIT] = to_visit_index(out[VISIT])
        unkeyed = int(out[VISIT].isna().sum())
        if unkeyed:
            logger.warning(f"{unkeyed} rows without an integer visit index; kept with the visit undefined")
    if LONGEST_DIAMETER in out.columns:
        out[LONGEST_DIAMETER] = pd.to_numeric(out[LONGEST_DIAMETER], errors="coerce")
    if DATE in out.columns:
        out[DATE] = pd.to_datetime(out[DATE], errors="coerce")
    return out


def validate_columns(df: pd.DataFrame, name: str) -> None:
    """Raise ValueError if ``df`` lacks a column required for table ``name``."""
    missing = [c for c in REQUIRED_COLUMNS[name] if c not in df.columns]
    if missing:
        raise ValueError(f"Source table {name!r} missing required columns: {missing}")


class SourceTableLoader:
    """Load the source tables named in a PipelineConfig.

    Example:
        >>> loader = SourceTableLoader(PipelineConfig.from_yaml("configs/default.yaml"))
        >>> tables = loader.load_all()
    """

    def __init__(self, config: PipelineConfig):
        """Initialize the loader.

        Args:
            config: Configuration whose ``sources`` section locates every table
        """
        self.config = config

    def load(self, name: str) -> pd.DataFrame:
        """Load, rename, validate and coerce one source table.

        Args:
            name: One of SOURCE_TABLES

        Returns:
            DataFrame with pipeline column names
        """
        if name not in SOURCE_TABLES:
            raise ValueError(f"Unknown source table: {name}")
        if name not in self.config.sources:
            raise ValueError(f"No source configured for table {name!r}")

        spec: SourceSpec = self.config.sources[name]
        df = read_table(spec.path, spec.sheet)
        df = df.rename(columns=spec.columns)
        validate_columns(df, name)
        df = coerce_columns(df)

        if df.empty:
            logger.warning(f"Source table {name!r} is empty ({spec.path})")
        else:
            logger.info(f"Loaded {name}: {len(df)} rows from {spec.path}")

        undated = int(df[DATE].isna().sum()) if DATE in df.columns else 0
        if undated:
            logger.debug(f"{name}: {undated} rows without a parseable evaluation date")
        return df

    def load_all(self) -> SourceTables:
        """Load every source table."""
        return SourceTables(**{name: self.load(name) for name in SOURCE_TABLES})


def select_cohort(cohort_table: pd.DataFrame, config: Optional[PipelineConfig] = None) -> frozenset:
    """Patients treated at the configured cohort visit.

    Args:
        cohort_table: patient, visit_index, treatment_administered
        config: Supplies the visit index and the "treated" value

    Returns:
        Frozenset of patient ids
    """
    config = config or PipelineConfig()
    validate_columns(cohort_table, "cohort")

    visits = pd.to_numeric(cohort_table[VISIT], errors="coerce").astype(float)
    treated = cohort_table[TREATMENT].map(lambda v: v.strip() if isinstance(v, str) else v)
    mask = (visits == config.cohort_visit_index) & (treated == config.treatment_administered_value)

    cohort = frozenset(cohort_table.loc[mask, PATIENT].dropna())
    logger.info(
        f"Cohort: {len(cohort)} of {cohort_table[PATIENT].nunique()} patients treated at visit "
        f"{config.cohort_visit_index}"
    )
    return cohort

