"""Output writers for the canonical timeline and the patient summary."""

import logging
from pathlib import Path
from typing import Union

import pandas as pd

logger = logging.getLogger(__name__)


def write_table(table: pd.DataFrame, path: Union[str, Path], sheet_name: str = "timeline") -> Path:
    """Write ``table`` to CSV or Excel, chosen by the file suffix.

    Args:
        table: Table to write
        path: Output file (.csv or .xlsx); parent directories are created
        sheet_name: Worksheet name for Excel output

    Returns:
        Path to the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    suffix = path.suffix.lower()
    if suffix == ".csv":
        table.to_csv(path, index=False)
    elif suffix in (".xlsx", ".xlsm"):
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            table.to_excel(writer, sheet_name=sheet_name, index=False)
    else:
        raise ValueError(f"Unsupported file format: {suffix}")

    logger.info(f"Wrote {len(table)} rows to {path}")
    return path
