#!/usr/bin/env python3
"""Formatter: renders a resolved diagnosis into plain-language copy.

This is the final stage of the diagnosis pipeline. It takes a DecisionSummary
(from decide.py or any caller that resolved status and root cause itself) and
the raw metrics, and produces a HumanizedCopy:

- headline: one of the fixed status strings in the copy deck
- reason: one sentence, backed by a concrete number when one is available
- actions: 1-3 next steps

There are two branches:

1. SCALE_READY: fixed headline and scaling actions. The reason states the
   most relevant metric against its goal, or that performance is stable.
2. FIXABLE / BROKEN: the root cause's entry from the copy deck. An unknown
   root cause renders the fallback block unchanged.

Metric selection is a strict priority chain. A CPM spike is always reported
first, then a poor CTR, then a high CPA, and only then the metric the root
cause prefers. A FUNNEL diagnosis with HIGH CPM still leads with CPM.

The Composer never raises. Missing numbers drop the numeric clause, unknown
keys fall back to generic copy.

Usage (CLI):
    python -m ad_diagnosis.formatter --input decision.json

Usage (import):
    from ad_diagnosis.formatter import DiagnosisComposer, build_humanized_copy
    copy = build_humanized_copy(decision, metrics)

Output: JSON to stdout with "headline", "reason" and "actions" keys.
"""

from __future__ import annotations

import argparse
import json
import math
import sys
from pathlib import Path
from typing import Callable, Optional, Tuple

from loguru import logger

from ad_diagnosis.classify import metric_pair
from ad_diagnosis.copy_deck import MAX_ACTIONS, CopyDeck, CopyDeckError, default_copy_deck
from ad_diagnosis.schema import (
    CostStatus,
    CtrStatus,
    DecisionStatus,
    DecisionSummary,
    HumanizedCopy,
    MetricKind,
    MetricObservation,
    MetricPick,
    MetricStatusSet,
    parse_decision_summary,
    parse_observation,
)


# ──────────────────────────────────────────────────
# Constants: labels and presentation
# ──────────────────────────────────────────────────

CURRENCY_SYMBOL = "₹"  # Indian rupee sign

METRIC_LABEL = {
    MetricKind.CTR: "click rate",
    MetricKind.CPM: "cost per 1,000 views",
    MetricKind.CPA: "cost per result",
}

STABLE_REASON = "Performance is stable against goals."

# Ordered (predicate, metric) rules for picking the explanatory metric.
# Order is product policy: delivery-cost spikes first, then weak attention,
# then conversion cost. First match wins.
SELECTION_RULES: Tuple[Tuple[Callable[[MetricStatusSet], bool], MetricKind], ...] = (
    (lambda s: s.cpm_status == CostStatus.HIGH, MetricKind.CPM),
    (lambda s: s.ctr_status == CtrStatus.POOR, MetricKind.CTR),
    (lambda s: s.cpa_status == CostStatus.HIGH, MetricKind.CPA),
)


# ──────────────────────────────────────────────────
# Value formatting
# ──────────────────────────────────────────────────

def format_currency(value: float) -> str:
    """Whole currency units, rounded half up: 1999.4 -> "₹1999", 1999.5 -> "₹2000"."""
    return f"{CURRENCY_SYMBOL}{int(math.floor(value + 0.5))}"


def format_percent(value: float) -> str:
    """One decimal place: 0.5 -> "0.5%"."""
    return f"{value:.1f}%"


def format_metric_value(kind: MetricKind, value: float) -> str:
    if kind == MetricKind.CTR:
        return format_percent(value)
    return format_currency(value)


def _is_quotable(pick: MetricPick) -> bool:
    """A pick can be quoted only when both numbers are present and non-zero."""
    if pick.kind is None:
        return False
    for number in (pick.value, pick.benchmark):
        if not number or not math.isfinite(number):
            return False
    return True


def _metric_clause(pick: MetricPick) -> str:
    label = METRIC_LABEL[pick.kind]
    value = format_metric_value(pick.kind, pick.value)
    benchmark = format_metric_value(pick.kind, pick.benchmark)
    return f"{label} is {value} vs {benchmark} goal."


# ──────────────────────────────────────────────────
# Composer
# ──────────────────────────────────────────────────

class DiagnosisComposer:
    """Renders DecisionSummary + raw metrics into HumanizedCopy.

    The copy deck is injected so alternate rule sets can be used in tests
    or per market; the default is the shipped deck.
    """

    def __init__(self, deck: Optional[CopyDeck] = None):
        self.deck = deck if deck is not None else default_copy_deck()

    def pick_metric(self, decision: DecisionSummary, metrics: MetricObservation) -> MetricPick:
        """Select the single most explanatory metric for this decision."""
        kind: Optional[MetricKind] = None
        for predicate, candidate in SELECTION_RULES:
            if predicate(decision.metrics):
                kind = candidate
                break

        if kind is None:
            entry = self.deck.entry_for(decision.root_cause)
            if entry is not None:
                kind = entry.metric_preference

        if kind is None:
            return MetricPick(kind=None)

        value, benchmark = metric_pair(kind, metrics, decision.thresholds)
        return MetricPick(kind=kind, value=value, benchmark=benchmark)

    def format_reason(self, base_reason: str, pick: MetricPick) -> str:
        """Append "because <metric> is X vs Y goal." to a base reason when quotable."""
        if not _is_quotable(pick):
            return base_reason
        return f"{base_reason}, because {_metric_clause(pick)}"

    def compose(self, decision: DecisionSummary, metrics: MetricObservation) -> HumanizedCopy:
        """Build the copy for one decision. Never raises."""
        if decision.status == DecisionStatus.SCALE_READY:
            return self._compose_scale_ready(decision, metrics)
        return self._compose_root_cause(decision, metrics)

    def _compose_scale_ready(self, decision: DecisionSummary, metrics: MetricObservation) -> HumanizedCopy:
        pick = self.pick_metric(decision, metrics)
        if _is_quotable(pick):
            reason = f"Performance is stable; {_metric_clause(pick)}"
        else:
            reason = STABLE_REASON
        logger.debug("Scale-ready copy, metric={}", pick.kind.value if pick.kind else None)
        return HumanizedCopy(
            headline=self.deck.scale_ready.headline,
            reason=reason,
            actions=self.deck.scale_ready.actions[:MAX_ACTIONS],
        )

    def _compose_root_cause(self, decision: DecisionSummary, metrics: MetricObservation) -> HumanizedCopy:
        entry = self.deck.entry_for(decision.root_cause)
        fallback = self.deck.fallback
        if entry is None:
            logger.warning("No copy for root cause {!r}; rendering fallback copy", decision.root_cause)
            return HumanizedCopy(
                headline=fallback.headline,
                reason=fallback.reason,
                actions=fallback.actions,
            )

        pick = self.pick_metric(decision, metrics)
        logger.debug(
            "Root cause {} copy, metric={}",
            decision.root_cause,
            pick.kind.value if pick.kind else None,
        )
        actions = entry.actions[:MAX_ACTIONS] or fallback.actions
        return HumanizedCopy(
            headline=entry.headline,
            reason=self.format_reason(entry.base_reason, pick),
            actions=actions,
            creative_brief=entry.creative_brief,
        )


def build_humanized_copy(
    decision: DecisionSummary,
    metrics: MetricObservation,
    deck: Optional[CopyDeck] = None,
) -> HumanizedCopy:
    """Convenience wrapper: compose with the given deck or the shipped one."""
    return DiagnosisComposer(deck).compose(decision, metrics)


# ──────────────────────────────────────────────────
# CLI interface
# ──────────────────────────────────────────────────

def parse_args() -> argparse.Namespace:
    """Parse command-line arguments for CLI usage."""
    parser = argparse.ArgumentParser(
        description="Render a resolved ad diagnosis into headline, reason and actions"
    )
    parser.add_argument(
        "--input", required=True,
        help='Path to JSON file with {"decision": {...}, "metrics": {...}}'
    )
    parser.add_argument(
        "--copy-deck", default=None,
        help="Path to an alternate copy deck YAML (default: shipped deck)"
    )
    parser.add_argument(
        "--log-level", default="WARNING",
        help="Log level for stderr diagnostics (default: WARNING)"
    )
    return parser.parse_args()


def main():
    """CLI entry point: load decision JSON, render copy, print JSON to stdout."""
    from ad_diagnosis.copy_deck import load_copy_deck
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
        deck = load_copy_deck(args.copy_deck) if args.copy_deck else None
        composer = DiagnosisComposer(deck)
    except (OSError, CopyDeckError) as exc:
        print(json.dumps({"error": str(exc)}))
        sys.exit(1)

    decision = parse_decision_summary(payload.get("decision"))
    metrics = parse_observation(payload.get("metrics"))
    copy = composer.compose(decision, metrics)

    print(json.dumps(copy.to_dict(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
