#!/usr/bin/env python3
"""Golden-case eval runner: checks rendered diagnoses word for word.

Each case in eval/cases/*.yaml holds a request and the fields the pipeline
must produce for it (status, root cause, exact headline and reason, number of
actions, record fields). The runner feeds every request through
run_analysis() and compares.

WHY EXACT MATCHING:
The copy is shown to business owners and compared against the web app's
output. A changed comma or a rounding difference ("₹1999" vs "₹1999.4") is a
regression, so reasons are compared as full strings, not keywords.

Usage (CLI):
    python eval/run_eval.py                 # Run all cases
    python eval/run_eval.py --case E4       # Run one case
    python eval/run_eval.py --list-cases

Usage (from Python):
    from eval.run_eval import load_cases, run_case
    results = [run_case(c) for c in load_cases()]

Output: JSON summary to stdout. Exit status 1 if any case fails.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

# ── Paths ──
EVAL_DIR = Path(__file__).resolve().parent
CASES_DIR = EVAL_DIR / "cases"
PROJECT_ROOT = EVAL_DIR.parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from ad_diagnosis.analyze import run_analysis  # noqa: E402
from ad_diagnosis.schema import parse_request  # noqa: E402


# Expectation key -> (section, field) in run_analysis() output
EXPECT_PATHS = {
    "status": ("decision", "status"),
    "primary_layer": ("decision", "primary_layer"),
    "root_cause": ("decision", "root_cause"),
    "confirmed": ("decision", "confirmed"),
    "audience_issue": ("decision", "audience_issue"),
    "success_metric": ("decision", "success_metric"),
    "headline": ("copy", "headline"),
    "reason": ("copy", "reason"),
    "result_type": ("result", "result_type"),
    "failure_reason": ("result", "failure_reason"),
}


# ──────────────────────────────────────────────────
# Case Loader
# ──────────────────────────────────────────────────

def load_cases(cases_dir: Optional[Path] = None) -> List[Dict[str, Any]]:
    """Load all case YAML files, sorted by filename for deterministic ordering."""
    if cases_dir is None:
        cases_dir = CASES_DIR

    cases = []
    for yaml_path in sorted(cases_dir.glob("*.yaml")):
        with open(yaml_path, encoding="utf-8") as f:
            case = yaml.safe_load(f)
        case["_source_file"] = yaml_path.name
        cases.append(case)
    return cases


# ──────────────────────────────────────────────────
# Scoring
# ──────────────────────────────────────────────────

def _check(field: str, expected: Any, actual: Any) -> Dict[str, Any]:
    return {
        "field": field,
        "expected": expected,
        "actual": actual,
        "passed": expected == actual,
    }


def score_case(case: Dict[str, Any], outcome: Dict[str, Any]) -> Dict[str, Any]:
    """Compare one pipeline outcome against the case's expectations.

    Args:
        case: Parsed case dict with "case" and "expect" blocks.
        outcome: Output of run_analysis().

    Returns:
        Dict with case id, overall pass flag, and one entry per check.
    """
    expect = case.get("expect", {})
    copy = outcome.get("copy", {})
    checks = []

    for key, expected in expect.items():
        if key in EXPECT_PATHS:
            section, field = EXPECT_PATHS[key]
            checks.append(_check(key, expected, outcome.get(section, {}).get(field)))
        elif key == "action_count":
            checks.append(_check(key, expected, len(copy.get("actions", []))))
        elif key == "reason_contains":
            reason = copy.get("reason", "")
            checks.append({
                "field": key,
                "expected": expected,
                "actual": reason,
                "passed": expected in reason,
            })
        elif key == "has_creative_brief":
            checks.append(_check(key, expected, "creative_brief" in copy))
        else:
            checks.append({
                "field": key,
                "expected": expected,
                "actual": None,
                "passed": False,
                "detail": "unknown expectation key",
            })

    # The action bound holds for every case, stated or not
    action_count = len(copy.get("actions", []))
    checks.append({
        "field": "action_bounds",
        "expected": "1-3",
        "actual": action_count,
        "passed": 1 <= action_count <= 3,
    })

    return {
        "case": case.get("case", {}).get("id", case.get("_source_file")),
        "name": case.get("case", {}).get("name", ""),
        "passed": all(c["passed"] for c in checks),
        "checks": checks,
    }


def run_case(case: Dict[str, Any]) -> Dict[str, Any]:
    """Run one case through the pipeline and score it."""
    request = parse_request(case["request"])
    outcome = run_analysis(request)
    return score_case(case, outcome)


def summarize(results: List[Dict[str, Any]]) -> Dict[str, Any]:
    passed = sum(1 for r in results if r["passed"])
    return {
        "total": len(results),
        "passed": passed,
        "failed": len(results) - passed,
        "failing_cases": [r["case"] for r in results if not r["passed"]],
        "results": results,
    }


# ──────────────────────────────────────────────────
# CLI Interface
# ──────────────────────────────────────────────────

def parse_args() -> argparse.Namespace:
    """Parse command-line arguments for CLI usage."""
    parser = argparse.ArgumentParser(
        description="Run golden-case eval on the ad diagnosis pipeline"
    )
    parser.add_argument(
        "--case", default=None,
        help="Specific case id to run (e.g., E4). Defaults to all."
    )
    parser.add_argument(
        "--list-cases", action="store_true",
        help="List all available eval cases and exit"
    )
    return parser.parse_args()


def main():
    """CLI entry point: load cases, run them, print JSON summary."""
    args = parse_args()
    cases = load_cases()

    if args.list_cases:
        for case in cases:
            meta = case.get("case", {})
            print(f"  {meta.get('id')}: {meta.get('name')}")
        return

    if args.case:
        cases = [c for c in cases if c.get("case", {}).get("id") == args.case]
        if not cases:
            print(json.dumps({"error": f"No eval case found with id {args.case}"}))
            sys.exit(1)

    summary = summarize([run_case(c) for c in cases])
    print(json.dumps(summary, indent=2, ensure_ascii=False))
    if summary["failed"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
