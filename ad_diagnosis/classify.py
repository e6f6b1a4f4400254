#!/usr/bin/env python3
"""Metric classifier: raw metric vs. benchmark -> qualitative status.

Each metric is compared to its own benchmark using a tolerance band supplied
by the caller. The classifier only does the directional comparison:

- CTR: higher is better. GOOD at or above ``benchmark * band.upper``,
  AVERAGE at or above ``benchmark * band.lower``, POOR below that.
- CPM / CPA: lower is better. GOOD at or below ``benchmark * band.lower``,
  AVERAGE at or below ``benchmark * band.upper``, HIGH above that.

It never raises. A benchmark that is missing, zero, negative or not finite
(or a value that is not finite) gives AVERAGE, because there is nothing
meaningful to compare against.

Usage (import):
    from ad_diagnosis.classify import classify_metrics
    statuses = classify_metrics(observation, benchmarks, band)
"""

from __future__ import annotations

import math
from typing import Optional, Tuple, Union

from ad_diagnosis.schema import (
    CostStatus,
    CtrStatus,
    MetricBenchmarks,
    MetricKind,
    MetricObservation,
    MetricStatusSet,
    ToleranceBand,
)


def _comparable(value: Optional[float], benchmark: Optional[float]) -> bool:
    """True when both numbers are finite and the benchmark is positive."""
    if value is None or benchmark is None:
        return False
    try:
        return math.isfinite(value) and math.isfinite(benchmark) and benchmark > 0
    except TypeError:
        return False


def classify_ctr(value: Optional[float], benchmark: Optional[float], band: ToleranceBand) -> CtrStatus:
    """Classify click rate; falling short of the benchmark is POOR."""
    if not _comparable(value, benchmark):
        return CtrStatus.AVERAGE
    if value >= benchmark * band.upper:
        return CtrStatus.GOOD
    if value >= benchmark * band.lower:
        return CtrStatus.AVERAGE
    return CtrStatus.POOR


def classify_cost(value: Optional[float], benchmark: Optional[float], band: ToleranceBand) -> CostStatus:
    """Classify a cost metric (CPM or CPA); exceeding the benchmark is HIGH.

    A zero cost is GOOD, not an error.
    """
    if not _comparable(value, benchmark):
        return CostStatus.AVERAGE
    if value <= benchmark * band.lower:
        return CostStatus.GOOD
    if value <= benchmark * band.upper:
        return CostStatus.AVERAGE
    return CostStatus.HIGH


def classify_metric(
    kind: MetricKind,
    value: Optional[float],
    benchmark: Optional[float],
    band: ToleranceBand,
) -> Union[CtrStatus, CostStatus]:
    """Classify one metric, picking the comparison direction from its kind."""
    if kind == MetricKind.CTR:
        return classify_ctr(value, benchmark, band)
    return classify_cost(value, benchmark, band)


def classify_metrics(
    observation: MetricObservation,
    benchmarks: MetricBenchmarks,
    band: ToleranceBand,
) -> MetricStatusSet:
    """Classify all three metrics independently."""
    return MetricStatusSet(
        ctr_status=classify_ctr(observation.ctr, benchmarks.target_ctr, band),
        cpm_status=classify_cost(observation.cpm, benchmarks.target_cpm, band),
        cpa_status=classify_cost(observation.cpa, benchmarks.target_cpa, band),
    )


def metric_pair(
    kind: MetricKind,
    observation: MetricObservation,
    benchmarks: MetricBenchmarks,
) -> Tuple[float, float]:
    """Return the (observed value, benchmark) pair for one metric kind."""
    if kind == MetricKind.CTR:
        return observation.ctr, benchmarks.target_ctr
    if kind == MetricKind.CPM:
        return observation.cpm, benchmarks.target_cpm
    return observation.cpa, benchmarks.target_cpa
