#!/usr/bin/env python3
"""Analyze tool: one ad diagnosis request in, decision + copy + record out.

Runs the full pipeline:
1. Validate the request (schema.parse_request)
2. Resolve the decision (decide.py)
3. Render the copy (formatter.py)
4. Map both onto the analysis record shape the web app stores

Nothing is persisted here; the caller owns storage.

Usage (CLI):
    python -m ad_diagnosis.analyze --input request.json
    python -m ad_diagnosis.analyze --objective LEADS --problem LOW_CLICKS \
        --changed NOTHING_NEW_AD --audience BROAD --ctr 0.3 --cpm 400 --cpa 90

Usage (from Python):
    from ad_diagnosis.analyze import run_analysis
    result = run_analysis(request)

Output: JSON to stdout with "decision", "copy" and "result" keys.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from ad_diagnosis.copy_deck import CopyDeck, CopyDeckError
from ad_diagnosis.decide import Decision, ThresholdTable, ThresholdTableError, decide
from ad_diagnosis.formatter import DiagnosisComposer
from ad_diagnosis.schema import (
    AudienceType,
    Change,
    CreativeType,
    DecisionStatus,
    DiagnosisRequest,
    HumanizedCopy,
    InvalidRequestError,
    Objective,
    Problem,
    ResultType,
    parse_request,
)


RESULT_TYPE_BY_STATUS = {
    DecisionStatus.BROKEN: ResultType.DEAD,
    DecisionStatus.FIXABLE: ResultType.AVERAGE,
    DecisionStatus.SCALE_READY: ResultType.WINNING,
}

# Joins actions into the single-line fix stored on the record
ACTION_SEPARATOR = " | "


def build_analysis_record(decision: Decision, copy: HumanizedCopy) -> Dict[str, Any]:
    """Map decision + copy onto the stored analysis fields.

    failure_reason carries the root cause only for BROKEN ads.
    """
    if decision.status == DecisionStatus.BROKEN:
        failure_reason = decision.root_cause or "none"
    else:
        failure_reason = "none"
    return {
        "primary_reason": copy.headline,
        "supporting_logic": [copy.reason],
        "single_fix": ACTION_SEPARATOR.join(copy.actions),
        "result_type": RESULT_TYPE_BY_STATUS[decision.status].value,
        "failure_reason": failure_reason,
    }


def run_analysis(
    request: DiagnosisRequest,
    table: Optional[ThresholdTable] = None,
    deck: Optional[CopyDeck] = None,
) -> Dict[str, Any]:
    """Run decision + copy for one request and return a JSON-ready dict."""
    decision = decide(request, table)
    copy = DiagnosisComposer(deck).compose(decision, request.metrics)
    return {
        "decision": decision.to_dict(),
        "copy": copy.to_dict(),
        "result": build_analysis_record(decision, copy),
    }


# ──────────────────────────────────────────────────
# CLI interface
# ──────────────────────────────────────────────────

def parse_args() -> argparse.Namespace:
    """Parse command-line arguments for CLI usage."""
    parser = argparse.ArgumentParser(
        description="Diagnose an ad: decision, plain-language copy and analysis record"
    )
    parser.add_argument(
        "--input", default=None,
        help="Path to JSON file with the request (overrides the flags below)"
    )
    parser.add_argument("--objective", choices=[o.value for o in Objective])
    parser.add_argument("--problem", choices=[p.value for p in Problem],
                        help="What the owner sees going wrong")
    parser.add_argument("--changed", choices=[c.value for c in Change],
                        help="What was changed recently")
    parser.add_argument("--audience", choices=[a.value for a in AudienceType])
    parser.add_argument("--creative-type", choices=[c.value for c in CreativeType])
    parser.add_argument("--ctr", type=float, help="Click rate in percent (0.8 means 0.8%%)")
    parser.add_argument("--cpm", type=float, help="Cost per 1,000 impressions")
    parser.add_argument("--cpa", type=float, help="Cost per result")
    parser.add_argument(
        "--thresholds", default=None,
        help="Path to an alternate thresholds YAML"
    )
    parser.add_argument(
        "--copy-deck", default=None,
        help="Path to an alternate copy deck YAML"
    )
    parser.add_argument(
        "--log-level", default="WARNING",
        help="Log level for stderr diagnostics (default: WARNING)"
    )
    return parser.parse_args()


def _payload_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "objective": args.objective,
        "problem_faced": args.problem,
        "what_changed": args.changed,
        "audience_type": args.audience,
        "creative_type": args.creative_type,
        "ctr": args.ctr,
        "cpm": args.cpm,
        "cpa": args.cpa,
    }


def main():
    """CLI entry point: build the request, run the pipeline, print JSON to stdout."""
    from ad_diagnosis.copy_deck import load_copy_deck
    from ad_diagnosis.decide import load_threshold_table
    from ad_diagnosis.logger import setup_logger

    args = parse_args()
    setup_logger(args.log_level)

    if args.input:
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
    else:
        payload = _payload_from_args(args)

    try:
        request = parse_request(payload)
        table = load_threshold_table(args.thresholds) if args.thresholds else None
        deck = load_copy_deck(args.copy_deck) if args.copy_deck else None
        result = run_analysis(request, table, deck)
    except InvalidRequestError as exc:
        print(json.dumps({"error": str(exc), "details": exc.errors}))
        sys.exit(1)
    except (OSError, ThresholdTableError, CopyDeckError) as exc:
        print(json.dumps({"error": str(exc)}))
        sys.exit(1)

    print(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
