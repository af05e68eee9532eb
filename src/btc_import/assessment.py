"""Go/no-go release gate computed from import totals.

:func:`assess` is a pure function of the run totals and the thresholds:
the same inputs always give the same :class:`Assessment`.  A rate whose
denominator is zero is defined as ``0.0``, so an empty batch can never
pass the gate.
"""

from __future__ import annotations

from btc_import.config import Thresholds
from btc_import.models.run import Assessment, Counts

_RECOMMENDATIONS = {
    "resolution": "Add the missing organizers to TT or set their btcNiceName, then re-run.",
    "validation": "Fix the data quality issues listed in the failed-events report.",
    "overall": "Review the failed events and resolve write errors before the live import.",
}


def _rate(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def _recommendation(label: str, key: str, value: float, threshold: float) -> str:
    shortfall = (threshold - value) * 100
    return (
        f"{label} rate {value * 100:.1f}% is below the {threshold * 100:.1f}% threshold "
        f"(short by {shortfall:.1f} points). {_RECOMMENDATIONS[key]}"
    )


def assess(totals: Counts, thresholds: Thresholds | None = None) -> Assessment:
    """Compute the go/no-go assessment for *totals*.

    Rates::

        entityResolutionRate = resolved / (resolved + unresolved)
        validationRate       = valid / (valid + invalid)
        overallSuccessRate   = created / btc total

    Args:
        totals: Summed counters of a run.
        thresholds: Minimum rates; defaults to 0.90 / 0.95 / 0.85.

    Returns:
        The :class:`Assessment`, with one recommendation per metric that
        falls short of its threshold.
    """
    limits = thresholds or Thresholds()

    resolution_rate = _rate(
        totals.resolution_success, totals.resolution_success + totals.resolution_failure
    )
    validation_rate = _rate(totals.valid, totals.valid + totals.invalid)
    overall_rate = _rate(totals.created, totals.btc_total)

    checks = (
        ("Entity resolution", "resolution", resolution_rate, limits.minimum_resolution_rate),
        ("Validation", "validation", validation_rate, limits.minimum_validation_rate),
        ("Overall success", "overall", overall_rate, limits.minimum_overall_rate),
    )
    recommendations = tuple(
        _recommendation(label, key, value, threshold)
        for label, key, value, threshold in checks
        if value < threshold
    )

    return Assessment(
        entity_resolution_rate=resolution_rate,
        validation_rate=validation_rate,
        overall_success_rate=overall_rate,
        thresholds=limits.to_dict(),
        can_proceed=not recommendations,
        recommendations=recommendations,
    )
