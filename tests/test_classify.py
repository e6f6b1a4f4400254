"""Tests for the metric classifier."""

import math

import pytest

from ad_diagnosis.classify import (
    classify_cost,
    classify_ctr,
    classify_metric,
    classify_metrics,
    metric_pair,
)
from ad_diagnosis.schema import (
    CostStatus,
    CtrStatus,
    MetricBenchmarks,
    MetricKind,
    MetricObservation,
    ToleranceBand,
)


class TestClassifyCtr:
    """Click rate: lower is worse."""

    @pytest.mark.parametrize("value", [0.0, 0.3, 0.5, 0.79])
    def test_below_band_is_poor(self, band, value):
        assert classify_ctr(value, 1.0, band) is CtrStatus.POOR

    @pytest.mark.parametrize("value", [0.8, 0.95, 1.0, 1.19])
    def test_within_band_is_average(self, band, value):
        assert classify_ctr(value, 1.0, band) is CtrStatus.AVERAGE

    @pytest.mark.parametrize("value", [1.2, 1.5, 4.0])
    def test_above_band_is_good(self, band, value):
        assert classify_ctr(value, 1.0, band) is CtrStatus.GOOD

    def test_negative_value_is_poor_not_an_error(self, band):
        assert classify_ctr(-1.0, 1.0, band) is CtrStatus.POOR

    def test_band_edges_come_from_caller(self):
        wide = ToleranceBand(lower=0.5, upper=2.0)
        assert classify_ctr(0.6, 1.0, wide) is CtrStatus.AVERAGE
        assert classify_ctr(1.5, 1.0, wide) is CtrStatus.AVERAGE
        assert classify_ctr(0.4, 1.0, wide) is CtrStatus.POOR


class TestClassifyCost:
    """CPM / CPA: higher is worse."""

    @pytest.mark.parametrize("value", [0.0, 10.0, 50.0, 80.0])
    def test_below_band_is_good(self, band, value):
        assert classify_cost(value, 100.0, band) is CostStatus.GOOD

    @pytest.mark.parametrize("value", [81.0, 100.0, 119.0])
    def test_within_band_is_average(self, band, value):
        assert classify_cost(value, 100.0, band) is CostStatus.AVERAGE

    @pytest.mark.parametrize("value", [121.0, 200.0, 10000.0])
    def test_above_band_is_high(self, band, value):
        assert classify_cost(value, 100.0, band) is CostStatus.HIGH

    def test_inclusive_edges(self, band):
        assert classify_cost(0.8, 1.0, band) is CostStatus.GOOD
        assert classify_cost(1.2, 1.0, band) is CostStatus.AVERAGE

    def test_zero_cpa_is_good(self, band):
        assert classify_cost(0, 40, band) is CostStatus.GOOD

    def test_negative_cost_is_good(self, band):
        assert classify_cost(-5.0, 40, band) is CostStatus.GOOD


class TestDegradesToAverage:
    """No usable benchmark (or value) means nothing to compare against."""

    @pytest.mark.parametrize("benchmark", [None, 0, 0.0, -1.0, math.nan, math.inf])
    def test_unusable_benchmark(self, band, benchmark):
        assert classify_ctr(0.5, benchmark, band) is CtrStatus.AVERAGE
        assert classify_cost(500, benchmark, band) is CostStatus.AVERAGE

    @pytest.mark.parametrize("value", [None, math.nan, math.inf, -math.inf])
    def test_unusable_value(self, band, value):
        assert classify_ctr(value, 1.0, band) is CtrStatus.AVERAGE
        assert classify_cost(value, 100.0, band) is CostStatus.AVERAGE


class TestClassifyMetric:
    def test_dispatches_ctr_direction(self, band):
        assert classify_metric(MetricKind.CTR, 0.1, 1.0, band) is CtrStatus.POOR

    @pytest.mark.parametrize("kind", [MetricKind.CPM, MetricKind.CPA])
    def test_dispatches_cost_direction(self, band, kind):
        assert classify_metric(kind, 500, 100, band) is CostStatus.HIGH


class TestClassifyMetrics:
    def test_each_metric_classified_independently(self, band):
        observation = MetricObservation(ctr=0.5, cpm=10, cpa=50)
        benchmarks = MetricBenchmarks(target_ctr=1.0, target_cpm=8, target_cpa=40)
        statuses = classify_metrics(observation, benchmarks, band)
        assert statuses.ctr_status is CtrStatus.POOR
        assert statuses.cpm_status is CostStatus.HIGH
        assert statuses.cpa_status is CostStatus.HIGH

    def test_all_good(self, band):
        observation = MetricObservation(ctr=2.0, cpm=100, cpa=20)
        benchmarks = MetricBenchmarks(target_ctr=1.0, target_cpm=300, target_cpa=50)
        statuses = classify_metrics(observation, benchmarks, band)
        assert statuses.to_dict() == {
            "ctr_status": "GOOD",
            "cpm_status": "GOOD",
            "cpa_status": "GOOD",
        }

    def test_missing_benchmarks_do_not_raise(self, band):
        observation = MetricObservation(ctr=0.5, cpm=10, cpa=0)
        benchmarks = MetricBenchmarks(target_ctr=0, target_cpm=0, target_cpa=0)
        statuses = classify_metrics(observation, benchmarks, band)
        assert statuses.ctr_status is CtrStatus.AVERAGE
        assert statuses.cpm_status is CostStatus.AVERAGE
        assert statuses.cpa_status is CostStatus.AVERAGE


class TestMetricPair:
    @pytest.mark.parametrize(
        "kind, expected",
        [
            (MetricKind.CTR, (0.5, 1.0)),
            (MetricKind.CPM, (10, 8)),
            (MetricKind.CPA, (50, 40)),
        ],
    )
    def test_returns_value_and_benchmark(self, scenario_metrics, scenario_thresholds, kind, expected):
        assert metric_pair(kind, scenario_metrics, scenario_thresholds) == expected
