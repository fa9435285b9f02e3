"""Named, patient-specific data corrections.

Each ``ExclusionRule`` removes the degenerate rows of one patient: rows with
an undefined SLD, except at the rule's ``keep_visit``. Rules are declared in
configuration rather than written into the assembly logic, and every
applied rule reports what it removed.
"""

import logging
from dataclasses import dataclass

import pandas as pd

from recist_timeline.types import PATIENT, SLD, VISIT, ExclusionRule

logger = logging.getLogger(__name__)


@dataclass
class ExclusionReport:
    """What one rule removed.

    Attributes:
        rule: The rule applied
        removed: The dropped rows, unmodified
    """
    rule: ExclusionRule
    removed: pd.DataFrame

    @property
    def count(self) -> int:
        return len(self.removed)


def exclusion_mask(timeline: pd.DataFrame, rule: ExclusionRule) -> pd.Series:
    """Boolean mask of the rows ``rule`` removes."""
    mask = (timeline[PATIENT] == rule.patient) & timeline[SLD].isna()
    if rule.keep_visit is not None:
        mask &= timeline[VISIT].astype(float) != rule.keep_visit
    return mask


def apply_exclusions(
    timeline: pd.DataFrame,
    rules: list[ExclusionRule],
) -> tuple[pd.DataFrame, list[ExclusionReport]]:
    """Apply every rule in order.

    Args:
        timeline: Assembled per-visit table
        rules: Exclusion rules to apply

    Returns:
        (filtered table, one report per rule)
    """
    reports = []
    out = timeline
    for rule in rules:
        mask = exclusion_mask(out, rule)
        reports.append(ExclusionReport(rule=rule, removed=out[mask].copy()))
        if mask.any():
            logger.info(
                f"Exclusion rule {rule.name!r} removed {int(mask.sum())} rows for patient "
                f"{rule.patient} (visits {out.loc[mask, VISIT].sort_values().tolist()})"
            )
        else:
            logger.debug(f"Exclusion rule {rule.name!r} matched no rows")
        out = out[~mask]

    return out.reset_index(drop=True), reports
