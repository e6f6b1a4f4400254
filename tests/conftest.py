"""Shared test fixtures for Ad Performance Diagnosis tests."""

import pytest
import yaml
from pathlib import Path

from ad_diagnosis.schema import (
    CostStatus,
    CtrStatus,
    DecisionStatus,
    DecisionSummary,
    Layer,
    MetricBenchmarks,
    MetricObservation,
    MetricStatusSet,
    ToleranceBand,
)

# Project root
ROOT = Path(__file__).parent.parent

# Path to knowledge files
KNOWLEDGE_DIR = ROOT / "ad_diagnosis" / "knowledge"
CASES_DIR = ROOT / "eval" / "cases"


@pytest.fixture
def knowledge_dir():
    """Path to the ad_diagnosis/knowledge directory."""
    return KNOWLEDGE_DIR


@pytest.fixture
def deck_document():
    """Freshly parsed copy_deck.yaml, safe to modify per test."""
    with open(KNOWLEDGE_DIR / "copy_deck.yaml", encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def thresholds_document():
    """Freshly parsed thresholds.yaml, safe to modify per test."""
    with open(KNOWLEDGE_DIR / "thresholds.yaml", encoding="utf-8") as f:
        return yaml.safe_load(f)


@pytest.fixture
def band():
    """The shipped tolerance band: 0.8x / 1.2x of benchmark."""
    return ToleranceBand(lower=0.8, upper=1.2)


@pytest.fixture
def scenario_metrics():
    """Raw metrics shared by the reference scenarios."""
    return MetricObservation(ctr=0.5, cpm=10, cpa=50)


@pytest.fixture
def scenario_thresholds():
    return MetricBenchmarks(target_ctr=1.0, target_cpm=8, target_cpa=40)


@pytest.fixture
def make_decision(scenario_thresholds):
    """Factory for DecisionSummary with AVERAGE statuses by default."""

    def _make(
        status=DecisionStatus.FIXABLE,
        root_cause="CREATIVE",
        ctr_status=CtrStatus.AVERAGE,
        cpm_status=CostStatus.AVERAGE,
        cpa_status=CostStatus.AVERAGE,
        thresholds=None,
        primary_layer=Layer.CREATIVE,
    ):
        return DecisionSummary(
            status=status,
            primary_layer=primary_layer,
            root_cause=root_cause,
            metrics=MetricStatusSet(
                ctr_status=ctr_status,
                cpm_status=cpm_status,
                cpa_status=cpa_status,
            ),
            thresholds=thresholds if thresholds is not None else scenario_thresholds,
        )

    return _make
