#!/usr/bin/env python3
"""Tests for the golden-case eval: case files + runner.

These tests verify:
- All case YAML files exist and parse correctly
- Every case has a request and expectations the runner understands
- Every case passes against the current pipeline
- The scorer notices a wrong reason, headline or action count
"""

import sys
from pathlib import Path

import pytest

# ── Paths ──
EVAL_DIR = Path(__file__).parent.parent / "eval"
CASES_DIR = EVAL_DIR / "cases"

sys.path.insert(0, str(EVAL_DIR.parent))
from eval.run_eval import EXPECT_PATHS, load_cases, run_case, score_case, summarize  # noqa: E402


ALL_CASE_FILES = [
    "case1_launch_phase.yaml",
    "case2_budget_change.yaml",
    "case3_audience_change.yaml",
    "case4_scale_ready.yaml",
    "case5_broken.yaml",
    "case6_funnel_cpm_priority.yaml",
    "case7_unconfirmed.yaml",
    "case8_sales_preference.yaml",
]

KNOWN_EXPECT_KEYS = set(EXPECT_PATHS) | {"action_count", "reason_contains", "has_creative_brief"}


# ──────────────────────────────────────────────────
# Test Group 1: Case files
# ──────────────────────────────────────────────────

class TestCaseFiles:

    @pytest.mark.parametrize("case_file", ALL_CASE_FILES)
    def test_case_file_exists(self, case_file):
        assert (CASES_DIR / case_file).exists(), f"Missing eval case: {case_file}"

    def test_no_extra_cases(self):
        actual = sorted(f.name for f in CASES_DIR.glob("*.yaml"))
        assert actual == sorted(ALL_CASE_FILES)

    def test_case_ids_unique(self):
        ids = [c["case"]["id"] for c in load_cases()]
        assert len(ids) == len(set(ids))

    @pytest.mark.parametrize("case", load_cases(), ids=lambda c: c["_source_file"])
    def test_case_structure(self, case):
        assert {"case", "request", "expect"} <= set(case)
        assert set(case["expect"]) <= KNOWN_EXPECT_KEYS
        assert "reason" in case["expect"] or "reason_contains" in case["expect"]


# ──────────────────────────────────────────────────
# Test Group 2: Pipeline against golden cases
# ──────────────────────────────────────────────────

class TestGoldenCases:

    @pytest.mark.parametrize("case", load_cases(), ids=lambda c: c["case"]["id"])
    def test_case_passes(self, case):
        result = run_case(case)
        failed = [c for c in result["checks"] if not c["passed"]]
        assert result["passed"], f"{result['case']} failed checks: {failed}"

    def test_summary_counts(self):
        summary = summarize([run_case(c) for c in load_cases()])
        assert summary["total"] == len(ALL_CASE_FILES)
        assert summary["failed"] == 0
        assert summary["failing_cases"] == []


# ──────────────────────────────────────────────────
# Test Group 3: Scorer
# ──────────────────────────────────────────────────

def _outcome(reason="Base, because click rate is 0.5% vs 1.0% goal.", actions=("Do one thing.",)):
    return {
        "decision": {"status": "FIXABLE", "root_cause": "CREATIVE"},
        "copy": {"headline": "Status: Creative issue", "reason": reason, "actions": list(actions)},
        "result": {"result_type": "AVERAGE", "failure_reason": "none"},
    }


class TestScoreCase:

    def test_all_match(self):
        case = {"case": {"id": "T1"}, "expect": {"status": "FIXABLE", "action_count": 1}}
        result = score_case(case, _outcome())
        assert result["passed"]
        assert result["case"] == "T1"

    def test_reason_mismatch_detected(self):
        case = {"case": {"id": "T2"}, "expect": {"reason": "Base, because click rate is 0.4% vs 1.0% goal."}}
        result = score_case(case, _outcome())
        assert not result["passed"]
        assert result["checks"][0]["field"] == "reason"

    def test_reason_contains(self):
        case = {"case": {"id": "T3"}, "expect": {"reason_contains": "click rate"}}
        assert score_case(case, _outcome())["passed"]

    def test_action_bounds_always_checked(self):
        case = {"case": {"id": "T4"}, "expect": {}}
        result = score_case(case, _outcome(actions=("a", "b", "c", "d")))
        assert not result["passed"]
        assert result["checks"][-1]["field"] == "action_bounds"

    def test_unknown_expectation_fails(self):
        case = {"case": {"id": "T5"}, "expect": {"tone": "friendly"}}
        result = score_case(case, _outcome())
        assert not result["passed"]
        assert result["checks"][0]["detail"] == "unknown expectation key"

    def test_creative_brief_flag(self):
        case = {"case": {"id": "T6"}, "expect": {"has_creative_brief": True}}
        assert not score_case(case, _outcome())["passed"]
