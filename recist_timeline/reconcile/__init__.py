"""Reconciliation of the baseline and post-baseline lesion record sets."""

from recist_timeline.reconcile.baseline import reconcile_baseline
from recist_timeline.reconcile.common import assert_unique_keys
from recist_timeline.reconcile.longitudinal import (
    LongitudinalLesions,
    first_new_lesions,
    reconcile_longitudinal,
    reconcile_post_baseline,
)

__all__ = [
    "reconcile_baseline",
    "assert_unique_keys",
    "LongitudinalLesions",
    "first_new_lesions",
    "reconcile_longitudinal",
    "reconcile_post_baseline",
]
