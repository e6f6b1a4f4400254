#!/usr/bin/env python3
"""Decision step: resolves primary layer, root cause and verdict for an ad.

This tool turns what the business owner told us (objective, the problem they
see, what they changed recently, audience type) plus the raw metrics into a
Decision that formatter.py can render.

WHY INTENT FIRST:
Metrics alone can't tell "the creative is weak" from "the landing page leaks"
reliably at small budgets. The owner's stated problem is the strongest signal,
so it picks the layer; metrics only confirm it. What changed recently then
locks the root cause: a budget jump explains rising cost better than any
layer does.

The steps, in order:
1. Primary layer from the stated problem
2. Benchmarks for the objective/audience context
3. Confirm the layer with metrics (confirm only, never decide)
4. Lock the root cause from what changed
5. Audience issue, only when CPM is clearly high
6. Success metric for the objective
7. Classify each metric against its benchmark
8. Final verdict (last step)

Usage (CLI):
    python -m ad_diagnosis.decide --input request.json

Usage (from Python):
    from ad_diagnosis.decide import decide
    decision = decide(request)

Output: JSON to stdout.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from loguru import logger

from ad_diagnosis.classify import classify_metrics
from ad_diagnosis.schema import (
    AudienceIssue,
    AudienceType,
    Change,
    CostStatus,
    CtrStatus,
    DecisionStatus,
    DecisionSummary,
    DiagnosisRequest,
    InvalidRequestError,
    Layer,
    MetricBenchmarks,
    MetricObservation,
    MetricStatusSet,
    Objective,
    Problem,
    RootCause,
    SuccessMetric,
    ToleranceBand,
    parse_request,
)


# ──────────────────────────────────────────────────
# Thresholds: confirmation ratios against the context benchmark
# ──────────────────────────────────────────────────

# CREATIVE is confirmed when CTR is more than 30% below target
CREATIVE_CONFIRM_RATIO = 0.7

# FUNNEL is confirmed when CTR meets target but CPA is 50%+ over target
FUNNEL_CPA_CONFIRM_RATIO = 1.5

# CPM this far over target flags an audience issue
AUDIENCE_CPM_RATIO = 1.3

KNOWLEDGE_DIR = Path(__file__).resolve().parent / "knowledge"
DEFAULT_THRESHOLDS_PATH = KNOWLEDGE_DIR / "thresholds.yaml"


PRIMARY_LAYER_BY_PROBLEM = {
    Problem.LOW_CLICKS: Layer.CREATIVE,
    Problem.CLICKS_NO_ACTION: Layer.FUNNEL,
    Problem.MESSAGES_NO_CONVERSION: Layer.SALES,
}

ROOT_CAUSE_BY_CHANGE = {
    Change.CREATIVE_CHANGED: RootCause.CREATIVE,
    Change.AUDIENCE_CHANGED: RootCause.AUDIENCE,
    Change.BUDGET_CHANGED: RootCause.DELIVERY,
}

AUDIENCE_ISSUE_BY_TYPE = {
    AudienceType.INTEREST_BASED: AudienceIssue.OVER_TARGETING,
    AudienceType.BROAD: AudienceIssue.CREATIVE_OR_COMPETITION,
    AudienceType.LOOKALIKE: AudienceIssue.NORMAL_BEHAVIOR,
}

SUCCESS_METRIC_BY_OBJECTIVE = {
    Objective.WHATSAPP: SuccessMetric.MESSAGES,
    Objective.LEADS: SuccessMetric.FORMS,
    Objective.SALES: SuccessMetric.PURCHASES,
}


# ──────────────────────────────────────────────────
# Types
# ──────────────────────────────────────────────────

class ThresholdTableError(ValueError):
    """Raised when the thresholds file is malformed."""


@dataclass(frozen=True)
class ThresholdTable:
    """Per-context benchmarks plus the tolerance band used to classify metrics."""

    benchmarks: Mapping[Tuple[Objective, AudienceType], MetricBenchmarks]
    default_context: Tuple[Objective, AudienceType]
    band: ToleranceBand


@dataclass(frozen=True)
class Decision(DecisionSummary):
    """DecisionSummary plus the evidence the decision step gathered."""

    confirmed: bool = False
    audience_issue: Optional[AudienceIssue] = None
    success_metric: SuccessMetric = SuccessMetric.RESULTS

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["confirmed"] = self.confirmed
        out["audience_issue"] = self.audience_issue.value if self.audience_issue else None
        out["success_metric"] = self.success_metric.value
        return out


# ──────────────────────────────────────────────────
# Threshold table loading
# ──────────────────────────────────────────────────

def _positive_number(raw: Any, where: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw <= 0:
        raise ThresholdTableError(f"{where}: expected a positive number, got {raw!r}")
    return float(raw)


def build_threshold_table(data: Mapping[str, Any]) -> ThresholdTable:
    """Validate a parsed thresholds document and build a ThresholdTable."""
    if not isinstance(data, Mapping) or not isinstance(data.get("benchmarks"), Mapping):
        raise ThresholdTableError("thresholds file needs a 'benchmarks' mapping")

    table: Dict[Tuple[Objective, AudienceType], MetricBenchmarks] = {}
    for objective_key, by_audience in data["benchmarks"].items():
        try:
            objective = Objective(objective_key)
        except ValueError:
            raise ThresholdTableError(f"unknown objective in benchmarks: {objective_key!r}")
        if not isinstance(by_audience, Mapping):
            raise ThresholdTableError(f"benchmarks.{objective_key}: expected a mapping")
        for audience_key, row in by_audience.items():
            try:
                audience = AudienceType(audience_key)
            except ValueError:
                raise ThresholdTableError(
                    f"unknown audience type in benchmarks.{objective_key}: {audience_key!r}"
                )
            where = f"benchmarks.{objective_key}.{audience_key}"
            if not isinstance(row, Mapping):
                raise ThresholdTableError(f"{where}: expected a mapping")
            table[(objective, audience)] = MetricBenchmarks(
                target_ctr=_positive_number(row.get("ctr"), f"{where}.ctr"),
                target_cpm=_positive_number(row.get("cpm"), f"{where}.cpm"),
                target_cpa=_positive_number(row.get("cpa"), f"{where}.cpa"),
            )

    default_block = data.get("default_context") or {}
    try:
        default_context = (
            Objective(default_block.get("objective")),
            AudienceType(default_block.get("audience_type")),
        )
    except (AttributeError, ValueError):
        raise ThresholdTableError("'default_context' needs a valid objective and audience_type")
    if default_context not in table:
        raise ThresholdTableError("'default_context' must point at a row in benchmarks")

    band_block = data.get("tolerance_band") or {}
    if not isinstance(band_block, Mapping):
        raise ThresholdTableError("'tolerance_band' must be a mapping")
    lower = _positive_number(band_block.get("lower"), "tolerance_band.lower")
    upper = _positive_number(band_block.get("upper"), "tolerance_band.upper")
    if lower > upper:
        raise ThresholdTableError("tolerance_band.lower must not exceed tolerance_band.upper")

    return ThresholdTable(
        benchmarks=MappingProxyType(table),
        default_context=default_context,
        band=ToleranceBand(lower=lower, upper=upper),
    )


def load_threshold_table(path: Optional[Union[str, Path]] = None) -> ThresholdTable:
    """Load the thresholds YAML (the shipped one by default)."""
    import yaml

    yaml_path = Path(path) if path is not None else DEFAULT_THRESHOLDS_PATH
    with open(yaml_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ThresholdTableError(f"invalid YAML in {yaml_path}: {exc}") from exc
    return build_threshold_table(data)


@lru_cache(maxsize=1)
def default_threshold_table() -> ThresholdTable:
    return load_threshold_table()


# ──────────────────────────────────────────────────
# Decision steps
# ──────────────────────────────────────────────────

def resolve_primary_layer(problem: Problem) -> Layer:
    """Step 1: trust the owner's stated problem to pick the layer."""
    return PRIMARY_LAYER_BY_PROBLEM.get(problem, Layer.CREATIVE)


def lookup_benchmarks(
    objective: Objective,
    audience_type: AudienceType,
    table: ThresholdTable,
) -> MetricBenchmarks:
    """Step 2: benchmarks for this context, or the table's default context."""
    found = table.benchmarks.get((objective, audience_type))
    if found is None:
        logger.debug("No benchmarks for {}/{}; using default context", objective.value, audience_type.value)
        found = table.benchmarks[table.default_context]
    return found


def confirm_layer(layer: Layer, observation: MetricObservation, benchmarks: MetricBenchmarks) -> bool:
    """Step 3: do the metrics back up the stated problem?

    Metrics confirm, they never override. SALES has no conversion data to
    check against, so it is taken at face value.
    """
    if layer == Layer.CREATIVE:
        return observation.ctr < benchmarks.target_ctr * CREATIVE_CONFIRM_RATIO
    if layer == Layer.FUNNEL:
        return (
            observation.ctr >= benchmarks.target_ctr
            and observation.cpa > benchmarks.target_cpa * FUNNEL_CPA_CONFIRM_RATIO
        )
    if layer == Layer.SALES:
        return True
    return False


def resolve_root_cause(change: Change, layer: Layer) -> RootCause:
    """Step 4: what changed recently locks the root cause.

    A brand-new ad with a creative complaint is still in its launch phase;
    otherwise an unchanged ad keeps the layer as its root cause.
    """
    if change in ROOT_CAUSE_BY_CHANGE:
        return ROOT_CAUSE_BY_CHANGE[change]
    if change == Change.NOTHING_NEW_AD and layer == Layer.CREATIVE:
        return RootCause.LAUNCH_PHASE
    return RootCause(layer)


def detect_audience_issue(
    audience_type: AudienceType,
    cpm: float,
    benchmarks: MetricBenchmarks,
) -> Optional[AudienceIssue]:
    """Step 5: read high CPM in light of the audience type."""
    if not cpm > benchmarks.target_cpm * AUDIENCE_CPM_RATIO:
        return None
    return AUDIENCE_ISSUE_BY_TYPE.get(audience_type)


def success_metric_for(objective: Objective) -> SuccessMetric:
    """Step 6: the result the objective is paying for."""
    return SUCCESS_METRIC_BY_OBJECTIVE.get(objective, SuccessMetric.RESULTS)


def resolve_status(confirmed: bool, statuses: MetricStatusSet) -> DecisionStatus:
    """Step 8: final verdict.

    - SCALE_READY: every metric GOOD
    - BROKEN: every metric at its bad value
    - FIXABLE: the stated problem was confirmed
    - BROKEN otherwise
    """
    if (
        statuses.ctr_status == CtrStatus.GOOD
        and statuses.cpm_status == CostStatus.GOOD
        and statuses.cpa_status == CostStatus.GOOD
    ):
        return DecisionStatus.SCALE_READY
    if (
        statuses.ctr_status == CtrStatus.POOR
        and statuses.cpm_status == CostStatus.HIGH
        and statuses.cpa_status == CostStatus.HIGH
    ):
        return DecisionStatus.BROKEN
    if confirmed:
        return DecisionStatus.FIXABLE
    return DecisionStatus.BROKEN


def decide(request: DiagnosisRequest, table: Optional[ThresholdTable] = None) -> Decision:
    """Run all decision steps for one request.

    Args:
        request: Validated request (see schema.parse_request).
        table: Threshold table; defaults to the shipped thresholds.yaml.

    Returns:
        Decision with status, primary layer, root cause, metric statuses,
        benchmarks, confirmation flag, audience issue and success metric.
    """
    if table is None:
        table = default_threshold_table()
    observation = request.metrics

    layer = resolve_primary_layer(request.problem_faced)
    benchmarks = lookup_benchmarks(request.objective, request.audience_type, table)
    confirmed = confirm_layer(layer, observation, benchmarks)
    root_cause = resolve_root_cause(request.what_changed, layer)
    audience_issue = detect_audience_issue(request.audience_type, observation.cpm, benchmarks)
    success_metric = success_metric_for(request.objective)
    statuses = classify_metrics(observation, benchmarks, table.band)
    status = resolve_status(confirmed, statuses)

    logger.debug(
        "Decision: layer={} confirmed={} root_cause={} status={}",
        layer.value, confirmed, root_cause.value, status.value,
    )

    return Decision(
        status=status,
        primary_layer=layer,
        root_cause=root_cause.value,
        metrics=statuses,
        thresholds=benchmarks,
        confirmed=confirmed,
        audience_issue=audience_issue,
        success_metric=success_metric,
    )


# ──────────────────────────────────────────────────
# CLI interface
# ──────────────────────────────────────────────────

def parse_args() -> argparse.Namespace:
    """Parse command-line arguments for CLI usage."""
    parser = argparse.ArgumentParser(
        description="Resolve layer, root cause and verdict for an ad diagnosis request"
    )
    parser.add_argument(
        "--input", required=True,
        help="Path to JSON file with the diagnosis request"
    )
    parser.add_argument(
        "--thresholds", default=None,
        help="Path to an alternate thresholds YAML (default: shipped table)"
    )
    parser.add_argument(
        "--log-level", default="WARNING",
        help="Log level for stderr diagnostics (default: WARNING)"
    )
    return parser.parse_args()


def main():
    """CLI entry point: load request JSON, run decision steps, print JSON to stdout."""
    from ad_diagnosis.logger import setup_logger

    args = parse_args()
    setup_logger(args.log_level)

    input_path = Path(args.input)
    if not input_path.exists():
        print(json.dumps({"error": f"File not found: {args.input}"}))
        sys.exit(1)

    with open(input_path, encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as exc:
            print(json.dumps({"error": f"Invalid JSON in {args.input}: {exc}"}))
            sys.exit(1)

    if not isinstance(payload, dict):
        print(json.dumps({"error": "Input must be a JSON object"}))
        sys.exit(1)

    try:
        request = parse_request(payload)
        table = load_threshold_table(args.thresholds) if args.thresholds else None
        decision = decide(request, table)
    except InvalidRequestError as exc:
        print(json.dumps({"error": str(exc), "details": exc.errors}))
        sys.exit(1)
    except (OSError, ThresholdTableError) as exc:
        print(json.dumps({"error": str(exc)}))
        sys.exit(1)

    print(json.dumps(decision.to_dict(), indent=2))


if __name__ == "__main__":
    main()
