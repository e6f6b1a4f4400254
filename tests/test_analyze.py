"""Tests for the full analysis pipeline and the stored record mapping."""

import json

import pytest

from ad_diagnosis.analyze import ACTION_SEPARATOR, build_analysis_record, run_analysis
from ad_diagnosis.decide import decide
from ad_diagnosis.formatter import DiagnosisComposer
from ad_diagnosis.schema import parse_request


def _request(**overrides):
    payload = {
        "objective": "LEADS",
        "problem_faced": "LOW_CLICKS",
        "what_changed": "NOTHING_NEW_AD",
        "audience_type": "BROAD",
        "ctr": 0.3,
        "cpm": 400,
        "cpa": 90,
    }
    payload.update(overrides)
    return parse_request(payload)


class TestRunAnalysis:

    def test_sections(self):
        out = run_analysis(_request())
        assert set(out) == {"decision", "copy", "result"}

    def test_fixable_record(self):
        out = run_analysis(_request())
        result = out["result"]
        assert result["result_type"] == "AVERAGE"
        assert result["failure_reason"] == "none"
        assert result["primary_reason"] == "Status: Launch phase"
        assert result["supporting_logic"] == [
            "Early delivery is still stabilizing, because click rate is 0.3% vs 1.0% goal."
        ]
        assert result["single_fix"] == ACTION_SEPARATOR.join(out["copy"]["actions"])

    def test_broken_record_carries_root_cause(self):
        out = run_analysis(_request(
            objective="SALES",
            problem_faced="CLICKS_NO_ACTION",
            what_changed="CREATIVE_CHANGED",
            ctr=0.4, cpm=600, cpa=300,
        ))
        assert out["decision"]["status"] == "BROKEN"
        assert out["result"]["result_type"] == "DEAD"
        assert out["result"]["failure_reason"] == "CREATIVE"
        assert "creative_brief" in out["copy"]

    def test_scale_ready_record(self):
        out = run_analysis(_request(audience_type="LOOKALIKE", ctr=2.0, cpm=180, cpa=30))
        assert out["result"]["result_type"] == "WINNING"
        assert out["result"]["failure_reason"] == "none"
        assert out["copy"]["headline"] == "Status: Ready to increase budget"

    def test_json_serializable(self):
        out = run_analysis(_request())
        assert json.loads(json.dumps(out, ensure_ascii=False)) == out


class TestBuildAnalysisRecord:

    @pytest.mark.parametrize(
        "overrides, result_type",
        [
            ({}, "AVERAGE"),
            ({"audience_type": "LOOKALIKE", "ctr": 2.0, "cpm": 180, "cpa": 30}, "WINNING"),
            ({"what_changed": "AUDIENCE_CHANGED", "ctr": 0.9, "cpm": 300, "cpa": 70}, "DEAD"),
        ],
    )
    def test_result_type_mapping(self, overrides, result_type):
        request = _request(**overrides)
        decision = decide(request)
        copy = DiagnosisComposer().compose(decision, request.metrics)
        assert build_analysis_record(decision, copy)["result_type"] == result_type

    def test_single_fix_joins_actions(self):
        request = _request()
        decision = decide(request)
        copy = DiagnosisComposer().compose(decision, request.metrics)
        record = build_analysis_record(decision, copy)
        assert record["single_fix"].split(" | ") == list(copy.actions)
