"""
Unit Tests for Experiment Results
"""

import pytest

from plutus.services.ab_testing import (
    Experiment,
    ExperimentMetrics,
    ExperimentStatus,
    ExperimentType,
    ExperimentVariant,
    UserAssignment,
)
from plutus.services.results import (
    INSUFFICIENT_SAMPLE_INSIGHT,
    RecommendedAction,
    ResultsCalculator,
    calculate_statistical_power,
    recommend_action,
    two_proportion_z_test,
)


def build_experiment(minimum_sample_size=100, minimum_detectable_effect=10.0):
    return Experiment(
        id="test_results",
        name="Results",
        type=ExperimentType.PACKAGE_DESIGN,
        status=ExperimentStatus.RUNNING,
        variants=[
            ExperimentVariant(id="control", name="Blue", traffic_split=50, is_control=True),
            ExperimentVariant(
                id="variant_b",
                name="Gold",
                traffic_split=50,
                config={"package_design": {"color_scheme": "gold"}},
            ),
        ],
        metrics=ExperimentMetrics(
            minimum_sample_size=minimum_sample_size,
            minimum_detectable_effect=minimum_detectable_effect,
        ),
        traffic_allocation=100,
    )


def build_assignments(variant_id, participants, conversions, value=9.99):
    return [
        UserAssignment(
            user_id=f"{variant_id}-{i}",
            test_id="test_results",
            variant_id=variant_id,
            has_converted=i < conversions,
            conversion_value=value if i < conversions else 0.0,
        )
        for i in range(participants)
    ]


@pytest.fixture
def calculator():
    return ResultsCalculator()


class TestZTest:

    def test_empty_groups(self):
        assert two_proportion_z_test(0, 0, 0, 0) == (0.0, 1.0)
        assert two_proportion_z_test(5, 100, 0, 0) == (0.0, 1.0)

    def test_no_variance(self):
        assert two_proportion_z_test(0, 100, 0, 100) == (0.0, 1.0)

    def test_detects_difference(self):
        z, p_value = two_proportion_z_test(100, 1000, 150, 1000)

        assert z == pytest.approx(3.38, abs=0.01)
        assert p_value < 0.001

    def test_symmetric(self):
        _, p1 = two_proportion_z_test(100, 1000, 150, 1000)
        _, p2 = two_proportion_z_test(150, 1000, 100, 1000)
        assert p1 == pytest.approx(p2)

    def test_power(self):
        assert calculate_statistical_power(0.1, 0.1, 1000, 0.05) == 0.0
        assert calculate_statistical_power(0.1, 0.15, 0, 0.05) == 0.0
        assert calculate_statistical_power(0.1, 0.15, 1000, 0.05) > 0.9


class TestRecommendation:

    def test_decision_table(self):
        assert recommend_action(False, True, 50, 10) == RecommendedAction.CONTINUE_TEST
        assert recommend_action(True, False, 50, 10) == RecommendedAction.INCONCLUSIVE
        assert recommend_action(True, True, 50, 10) == RecommendedAction.IMPLEMENT_WINNER
        assert recommend_action(True, True, 10, 10) == RecommendedAction.IMPLEMENT_WINNER
        assert recommend_action(True, True, 5, 10) == RecommendedAction.STOP_TEST


class TestResultsCalculator:

    def test_below_minimum_sample(self, calculator):
        experiment = build_experiment(minimum_sample_size=1000)
        assignments = build_assignments("control", 10, 1) + build_assignments("variant_b", 10, 5)

        results = calculator.compute(experiment, assignments)

        assert results.recommended_action == RecommendedAction.CONTINUE_TEST
        assert not results.is_significant
        assert results.total_participants == 20
        assert results.insights == [INSUFFICIENT_SAMPLE_INSIGHT]
        assert results.winning_variant is None

    def test_implement_winner(self, calculator):
        experiment = build_experiment()
        assignments = (
            build_assignments("control", 1000, 100)
            + build_assignments("variant_b", 1000, 150)
        )

        results = calculator.compute(experiment, assignments)

        assert results.is_significant
        assert results.winning_variant == "variant_b"
        assert results.lift_percentage == pytest.approx(50.0)
        assert results.conversion_rates == {
            "control": pytest.approx(0.10),
            "variant_b": pytest.approx(0.15),
        }
        assert results.revenue_per_variant["variant_b"] == pytest.approx(150 * 9.99)
        assert results.recommended_action == RecommendedAction.IMPLEMENT_WINNER
        assert "Winning variant shows 50.0% improvement over control." in results.insights
        assert "gold color scheme performed best." in results.insights

    def test_significant_but_small_lift_stops(self, calculator):
        experiment = build_experiment(minimum_detectable_effect=60.0)
        assignments = (
            build_assignments("control", 1000, 100)
            + build_assignments("variant_b", 1000, 150)
        )

        results = calculator.compute(experiment, assignments)

        assert results.is_significant
        assert results.recommended_action == RecommendedAction.STOP_TEST

    def test_inconclusive(self, calculator):
        experiment = build_experiment()
        assignments = (
            build_assignments("control", 1000, 100)
            + build_assignments("variant_b", 1000, 105)
        )

        results = calculator.compute(experiment, assignments)

        assert not results.is_significant
        assert results.p_value > 0.05
        assert results.recommended_action == RecommendedAction.INCONCLUSIVE

    def test_zero_control_rate_has_no_lift(self, calculator):
        experiment = build_experiment()
        assignments = build_assignments("control", 100, 0) + build_assignments("variant_b", 100, 5)

        results = calculator.compute(experiment, assignments)

        assert results.lift_percentage == 0.0
        assert results.winning_variant == "variant_b"

    def test_control_wins_ties(self, calculator):
        experiment = build_experiment()
        assignments = (
            build_assignments("control", 100, 10)
            + build_assignments("variant_b", 100, 10)
        )

        results = calculator.compute(experiment, assignments)

        assert results.winning_variant == "control"
        assert results.lift_percentage == 0.0

    def test_round_trip(self, calculator):
        from plutus.services.results import ExperimentResults

        experiment = build_experiment()
        assignments = (
            build_assignments("control", 1000, 100)
            + build_assignments("variant_b", 1000, 150)
        )
        results = calculator.compute(experiment, assignments)

        restored = ExperimentResults.from_dict(results.to_dict())

        assert restored.recommended_action == results.recommended_action
        assert restored.computed_at == results.computed_at
