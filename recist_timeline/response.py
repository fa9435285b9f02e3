"""Overall-response normalization and per-code visit markers.

Raw response text is mapped to a canonical ``ResponseCode`` when it matches
a known long-form label. Anything else passes through unchanged: the
normalizer never rejects a value and never substitutes a default category,
so an unexpected label stays visible in the output and simply activates no
indicator.
"""

import logging
from typing import Optional, Union

import pandas as pd

from recist_timeline.types import OVERALL_RESPONSE, VISIT, ResponseCode

logger = logging.getLogger(__name__)


KNOWN_RESPONSE_LABELS: dict[str, ResponseCode] = {
    "Complete Response (CR)": ResponseCode.CR,
    "Partial Response (PR)": ResponseCode.PR,
    "Stable Disease (SD)": ResponseCode.SD,
    "Non-CR/Non-PD": ResponseCode.NON_CR_NON_PD,
    "Non-CR/Non-PD (NN)": ResponseCode.NON_CR_NON_PD,
    "Non-Complete Response/Non-Progressive Disease (Non-CR/Non-PD)": ResponseCode.NON_CR_NON_PD,
    "Progressive Disease (PD)": ResponseCode.PD,
}

NormalizedResponse = Union[ResponseCode, str, None]


def canonical_code(value) -> Optional[ResponseCode]:
    """Return the ResponseCode a normalized value denotes, or None."""
    if isinstance(value, ResponseCode):
        return value
    if not isinstance(value, str):
        return None
    try:
        return ResponseCode(value)
    except ValueError:
        return None


class ResponseNormalizer:
    """Maps free-text overall responses to canonical codes.

    Example:
        >>> normalizer = ResponseNormalizer()
        >>> normalizer.normalize("Progressive Disease (PD)")
        <ResponseCode.PD: 'PD'>
        >>> normalizer.normalize("Indeterminate")
        'Indeterminate'
    """

    def __init__(self, extra_labels: Optional[dict[str, str]] = None):
        """Initialize the normalizer.

        Args:
            extra_labels: Additional label -> code mappings; codes are given
                as their string value (e.g. ``"PD"``)
        """
        self.labels = dict(KNOWN_RESPONSE_LABELS)
        for label, code in (extra_labels or {}).items():
            self.labels[label] = ResponseCode(code)

    def normalize(self, raw) -> NormalizedResponse:
        """Normalize one raw response string.

        Args:
            raw: Source text, possibly missing

        Returns:
            ResponseCode for a known label, None for a missing value, and the
            input unchanged otherwise
        """
        if raw is None or (not isinstance(raw, str) and pd.isna(raw)):
            return None
        if isinstance(raw, str):
            code = self.labels.get(raw.strip())
            if code is not None:
                return code
        return raw

    def normalize_table(self, responses: pd.DataFrame, column: str = OVERALL_RESPONSE) -> pd.DataFrame:
        """Return a copy of ``responses`` with ``column`` normalized.

        Canonical codes are stored as their plain string value.
        """
        out = responses.copy()
        if column not in out.columns:
            out[column] = None
            return out

        normalized = out[column].map(self.normalize)
        out[column] = normalized.map(lambda v: v.value if isinstance(v, ResponseCode) else v)

        unrecognized = out[column].dropna()
        unrecognized = unrecognized[unrecognized.map(canonical_code).isna()]
        if len(unrecognized) > 0:
            logger.warning(
                f"{len(unrecognized)} response values not recognized, passed through: "
                f"{sorted(set(map(str, unrecognized)))}"
            )
        return out


def normalize_response(raw, extra_labels: Optional[dict[str, str]] = None) -> NormalizedResponse:
    """Normalize a single raw response with the built-in label table."""
    return ResponseNormalizer(extra_labels).normalize(raw)


def assign_response_markers(timeline: pd.DataFrame, column: str = OVERALL_RESPONSE) -> pd.DataFrame:
    """Add one indicator and one visit marker per canonical code.

    ``is_<code>`` is True when the row's response is that code. ``<code>_visit``
    holds the row's visit index where the indicator is True and NaN
    elsewhere. Rows with a missing or unrecognized response get all five
    indicators False.

    Args:
        timeline: Table with ``column`` and ``visit_index``

    Returns:
        Copy of the table with the ten derived columns
    """
    out = timeline.copy()
    codes = out[column].map(canonical_code) if column in out.columns else pd.Series(None, index=out.index)

    for code in ResponseCode.all():
        indicator = (codes == code).astype(bool)
        out[code.indicator_column] = indicator
        out[code.marker_column] = out[VISIT].where(indicator).astype(float)

    return out
