"""Source table loading and output writing."""

from .loaders import (
    REQUIRED_COLUMNS,
    SourceTableLoader,
    read_table,
    select_cohort,
)
from .writers import write_table

__all__ = [
    "REQUIRED_COLUMNS",
    "SourceTableLoader",
    "read_table",
    "select_cohort",
    "write_table",
]
