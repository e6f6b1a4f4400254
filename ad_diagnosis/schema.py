#!/usr/bin/env python3
"""Schema types and payload normalization for the diagnosis engine.

Every entity the engine passes around is a value object: frozen dataclasses
and str-valued enums, created fresh per call and never mutated.

This module also bridges the camelCase field names used by the web client
(``rootCause``, ``ctrStatus``, ``targetCTR``...) to canonical snake_case names,
so JSON payloads from either side can be parsed.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TypeVar


# ──────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────

class MetricKind(str, Enum):
    """Which raw metric a value refers to."""

    CTR = "ctr"
    CPM = "cpm"
    CPA = "cpa"


class CtrStatus(str, Enum):
    """Click-rate status. Lower is worse, so the bad value is POOR."""

    GOOD = "GOOD"
    AVERAGE = "AVERAGE"
    POOR = "POOR"


class CostStatus(str, Enum):
    """Cost-metric status (CPM, CPA). Higher is worse, so the bad value is HIGH."""

    GOOD = "GOOD"
    AVERAGE = "AVERAGE"
    HIGH = "HIGH"


class DecisionStatus(str, Enum):
    FIXABLE = "FIXABLE"
    SCALE_READY = "SCALE_READY"
    BROKEN = "BROKEN"


class Layer(str, Enum):
    """Failure layer the stated problem points at."""

    CREATIVE = "CREATIVE"
    FUNNEL = "FUNNEL"
    SALES = "SALES"
    DELIVERY = "DELIVERY"
    AUDIENCE = "AUDIENCE"


class RootCause(str, Enum):
    """Keys of the root-cause copy table. LAUNCH_PHASE is not a layer."""

    LAUNCH_PHASE = "LAUNCH_PHASE"
    CREATIVE = "CREATIVE"
    AUDIENCE = "AUDIENCE"
    DELIVERY = "DELIVERY"
    FUNNEL = "FUNNEL"
    SALES = "SALES"


class Objective(str, Enum):
    LEADS = "LEADS"
    WHATSAPP = "WHATSAPP"
    SALES = "SALES"


class Problem(str, Enum):
    LOW_CLICKS = "LOW_CLICKS"
    CLICKS_NO_ACTION = "CLICKS_NO_ACTION"
    MESSAGES_NO_CONVERSION = "MESSAGES_NO_CONVERSION"


class Change(str, Enum):
    CREATIVE_CHANGED = "CREATIVE_CHANGED"
    AUDIENCE_CHANGED = "AUDIENCE_CHANGED"
    BUDGET_CHANGED = "BUDGET_CHANGED"
    NOTHING_NEW_AD = "NOTHING_NEW_AD"


class AudienceType(str, Enum):
    BROAD = "BROAD"
    INTEREST_BASED = "INTEREST_BASED"
    LOOKALIKE = "LOOKALIKE"


class CreativeType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


class AudienceIssue(str, Enum):
    OVER_TARGETING = "OVER_TARGETING"
    CREATIVE_OR_COMPETITION = "CREATIVE_OR_COMPETITION"
    NORMAL_BEHAVIOR = "NORMAL_BEHAVIOR"


class SuccessMetric(str, Enum):
    MESSAGES = "MESSAGES"
    FORMS = "FORMS"
    PURCHASES = "PURCHASES"
    RESULTS = "RESULTS"


class ResultType(str, Enum):
    """Verdict vocabulary of the stored analysis record."""

    DEAD = "DEAD"
    AVERAGE = "AVERAGE"
    WINNING = "WINNING"


# ──────────────────────────────────────────────────
# Value objects
# ──────────────────────────────────────────────────

@dataclass(frozen=True)
class MetricObservation:
    """Raw metrics for one ad. ctr is a percentage (0.5 means 0.5%)."""

    ctr: float
    cpm: float
    cpa: float

    def to_dict(self) -> Dict[str, float]:
        return {"ctr": self.ctr, "cpm": self.cpm, "cpa": self.cpa}


@dataclass(frozen=True)
class MetricBenchmarks:
    """One target per metric, chosen for the ad's context."""

    target_ctr: float
    target_cpm: float
    target_cpa: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "target_ctr": self.target_ctr,
            "target_cpm": self.target_cpm,
            "target_cpa": self.target_cpa,
        }


@dataclass(frozen=True)
class ToleranceBand:
    """Band edges as multiples of the benchmark.

    For CTR, >= upper is GOOD and < lower is POOR. For cost metrics,
    <= lower is GOOD and > upper is HIGH.
    """

    lower: float
    upper: float


@dataclass(frozen=True)
class MetricStatusSet:
    ctr_status: CtrStatus
    cpm_status: CostStatus
    cpa_status: CostStatus

    def to_dict(self) -> Dict[str, str]:
        return {
            "ctr_status": self.ctr_status.value,
            "cpm_status": self.cpm_status.value,
            "cpa_status": self.cpa_status.value,
        }


@dataclass(frozen=True)
class DecisionSummary:
    """The resolved diagnosis handed to the Composer.

    root_cause stays a plain string: unknown keys must reach the Composer
    so it can fall back instead of failing at parse time.
    """

    status: DecisionStatus
    primary_layer: Layer
    root_cause: Optional[str]
    metrics: MetricStatusSet
    thresholds: MetricBenchmarks

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "primary_layer": self.primary_layer.value,
            "root_cause": self.root_cause,
            "metrics": self.metrics.to_dict(),
            "thresholds": self.thresholds.to_dict(),
        }


@dataclass(frozen=True)
class HumanizedCopy:
    """Rendered explanation: headline, one reason sentence, 1-3 actions."""

    headline: str
    reason: str
    actions: Tuple[str, ...]
    creative_brief: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "headline": self.headline,
            "reason": self.reason,
            "actions": list(self.actions),
        }
        if self.creative_brief:
            out["creative_brief"] = self.creative_brief
        return out


@dataclass(frozen=True)
class MetricPick:
    """The metric chosen to justify a reason. kind is None when nothing qualifies."""

    kind: Optional[MetricKind]
    value: float = 0.0
    benchmark: float = 0.0


@dataclass(frozen=True)
class DiagnosisRequest:
    """What the business owner submits about a running ad."""

    objective: Objective
    problem_faced: Problem
    what_changed: Change
    audience_type: AudienceType
    metrics: MetricObservation
    creative_type: Optional[CreativeType] = None


# ──────────────────────────────────────────────────
# Errors
# ──────────────────────────────────────────────────

class InvalidRequestError(ValueError):
    """Raised when a diagnosis request fails validation."""

    def __init__(self, errors: List[Dict[str, str]]):
        self.errors = errors
        fields = ", ".join(e["field"] for e in errors)
        super().__init__(f"Invalid diagnosis request: {fields}")


# ──────────────────────────────────────────────────
# Key normalization (client camelCase -> canonical snake_case)
# ──────────────────────────────────────────────────

WIRE_TO_CANONICAL = {
    "rootCause": "root_cause",
    "primaryLayer": "primary_layer",
    "ctrStatus": "ctr_status",
    "cpmStatus": "cpm_status",
    "cpaStatus": "cpa_status",
    "targetCTR": "target_ctr",
    "targetCPM": "target_cpm",
    "targetCPA": "target_cpa",
    "problemFaced": "problem_faced",
    "whatChanged": "what_changed",
    "audienceType": "audience_type",
    "creativeType": "creative_type",
}

E = TypeVar("E", bound=Enum)


def _as_mapping(payload: Any) -> Mapping[str, Any]:
    """Anything other than a mapping reads as an empty payload."""
    return payload if isinstance(payload, Mapping) else {}


def normalize_keys(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of payload with wire aliases renamed, recursing into dicts.

    A canonical key already present wins over its alias.
    """
    normalized: Dict[str, Any] = {}
    for key, value in payload.items():
        if isinstance(value, Mapping):
            value = normalize_keys(value)
        canonical = WIRE_TO_CANONICAL.get(key, key)
        if canonical != key and canonical in payload:
            continue
        normalized[canonical] = value
    return normalized


def _to_float(value: Any) -> float:
    """Convert to a finite float; 0.0 when missing or unparsable."""
    try:
        if value is None or isinstance(value, bool):
            return 0.0
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(result):
        return 0.0
    return result


def _to_enum(enum_cls: Type[E], value: Any, default: E) -> E:
    """Coerce a string (any case) to an enum member, or return default."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().upper())
        except ValueError:
            pass
    return default


# ──────────────────────────────────────────────────
# Lenient parsers (Composer path: never raise)
# ──────────────────────────────────────────────────

def parse_observation(payload: Optional[Mapping[str, Any]]) -> MetricObservation:
    payload = _as_mapping(payload)
    return MetricObservation(
        ctr=_to_float(payload.get("ctr")),
        cpm=_to_float(payload.get("cpm")),
        cpa=_to_float(payload.get("cpa")),
    )


def parse_benchmarks(payload: Optional[Mapping[str, Any]]) -> MetricBenchmarks:
    payload = normalize_keys(_as_mapping(payload))
    return MetricBenchmarks(
        target_ctr=_to_float(payload.get("target_ctr")),
        target_cpm=_to_float(payload.get("target_cpm")),
        target_cpa=_to_float(payload.get("target_cpa")),
    )


def parse_status_set(payload: Optional[Mapping[str, Any]]) -> MetricStatusSet:
    """Unknown or missing statuses read as AVERAGE."""
    payload = normalize_keys(_as_mapping(payload))
    return MetricStatusSet(
        ctr_status=_to_enum(CtrStatus, payload.get("ctr_status"), CtrStatus.AVERAGE),
        cpm_status=_to_enum(CostStatus, payload.get("cpm_status"), CostStatus.AVERAGE),
        cpa_status=_to_enum(CostStatus, payload.get("cpa_status"), CostStatus.AVERAGE),
    )


def parse_decision_summary(payload: Optional[Mapping[str, Any]]) -> DecisionSummary:
    """Build a DecisionSummary from a JSON-style dict without ever raising.

    Missing pieces fall back to values that make the Composer render the
    most generic copy: status FIXABLE, layer CREATIVE, statuses AVERAGE,
    zero benchmarks (which drop the numeric clause).
    """
    payload = normalize_keys(_as_mapping(payload))
    root_cause = payload.get("root_cause")
    return DecisionSummary(
        status=_to_enum(DecisionStatus, payload.get("status"), DecisionStatus.FIXABLE),
        primary_layer=_to_enum(Layer, payload.get("primary_layer"), Layer.CREATIVE),
        root_cause=str(root_cause) if root_cause is not None else None,
        metrics=parse_status_set(payload.get("metrics")),
        thresholds=parse_benchmarks(payload.get("thresholds")),
    )


# ──────────────────────────────────────────────────
# Strict parser (decision step input)
# ──────────────────────────────────────────────────

_REQUIRED_ENUM_FIELDS = (
    ("objective", Objective),
    ("problem_faced", Problem),
    ("what_changed", Change),
    ("audience_type", AudienceType),
)


def _parse_metric_field(payload: Mapping[str, Any], name: str, errors: List[Dict[str, str]]) -> float:
    raw = payload.get(name)
    try:
        if raw is None or isinstance(raw, bool):
            raise ValueError
        value = float(raw)
    except (TypeError, ValueError):
        errors.append({"field": name, "message": "must be a number"})
        return 0.0
    if not math.isfinite(value) or value < 0:
        errors.append({"field": name, "message": "must be a finite number >= 0"})
        return 0.0
    return value


def parse_request(payload: Mapping[str, Any]) -> DiagnosisRequest:
    """Validate and build a DiagnosisRequest.

    Metrics may sit at the top level or under a "metrics" key.

    Raises:
        InvalidRequestError: listing every field that failed validation.
    """
    payload = normalize_keys(payload)
    errors: List[Dict[str, str]] = []

    values: Dict[str, Any] = {}
    for name, enum_cls in _REQUIRED_ENUM_FIELDS:
        raw = payload.get(name)
        try:
            values[name] = enum_cls(raw)
        except ValueError:
            allowed = ", ".join(m.value for m in enum_cls)
            errors.append({"field": name, "message": f"must be one of: {allowed}"})

    creative_type = None
    if payload.get("creative_type") is not None:
        try:
            creative_type = CreativeType(payload["creative_type"])
        except ValueError:
            errors.append({"field": "creative_type", "message": "must be one of: IMAGE, VIDEO"})

    metric_source = payload.get("metrics")
    if not isinstance(metric_source, Mapping):
        metric_source = payload
    ctr = _parse_metric_field(metric_source, "ctr", errors)
    cpm = _parse_metric_field(metric_source, "cpm", errors)
    cpa = _parse_metric_field(metric_source, "cpa", errors)

    if errors:
        raise InvalidRequestError(errors)

    return DiagnosisRequest(
        objective=values["objective"],
        problem_faced=values["problem_faced"],
        what_changed=values["what_changed"],
        audience_type=values["audience_type"],
        metrics=MetricObservation(ctr=ctr, cpm=cpm, cpa=cpa),
        creative_type=creative_type,
    )
