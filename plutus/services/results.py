"""
Experiment Results

Derives conversion rates, lift, significance and a recommended action from
the assignments accumulated for an experiment.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import structlog
from scipy import stats

from plutus.services.timeutils import parse_datetime, to_iso, utcnow

if TYPE_CHECKING:
    from plutus.services.ab_testing import Experiment, ExperimentVariant, UserAssignment

logger = structlog.get_logger()

INSUFFICIENT_SAMPLE_INSIGHT = "insufficient sample size"


class RecommendedAction(str, Enum):
    """What an operator should do with the experiment."""
    IMPLEMENT_WINNER = "implement_winner"
    CONTINUE_TEST = "continue_test"
    INCONCLUSIVE = "inconclusive"
    STOP_TEST = "stop_test"


@dataclass
class ExperimentResults:
    """Snapshot of an experiment's outcome."""
    is_significant: bool
    confidence_level: float
    total_participants: int
    recommended_action: RecommendedAction
    insights: List[str] = field(default_factory=list)
    winning_variant: Optional[str] = None
    lift_percentage: float = 0.0
    p_value: Optional[float] = None
    conversion_rates: Dict[str, float] = field(default_factory=dict)
    revenue_per_variant: Dict[str, float] = field(default_factory=dict)
    statistical_power: float = 0.0
    computed_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_significant": self.is_significant,
            "confidence_level": self.confidence_level,
            "total_participants": self.total_participants,
            "recommended_action": self.recommended_action.value,
            "insights": self.insights,
            "winning_variant": self.winning_variant,
            "lift_percentage": self.lift_percentage,
            "p_value": self.p_value,
            "conversion_rates": self.conversion_rates,
            "revenue_per_variant": self.revenue_per_variant,
            "statistical_power": self.statistical_power,
            "computed_at": to_iso(self.computed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExperimentResults":
        return cls(
            is_significant=data["is_significant"],
            confidence_level=data["confidence_level"],
            total_participants=data["total_participants"],
            recommended_action=RecommendedAction(data["recommended_action"]),
            insights=list(data.get("insights", [])),
            winning_variant=data.get("winning_variant"),
            lift_percentage=data.get("lift_percentage", 0.0),
            p_value=data.get("p_value"),
            conversion_rates=dict(data.get("conversion_rates", {})),
            revenue_per_variant=dict(data.get("revenue_per_variant", {})),
            statistical_power=data.get("statistical_power", 0.0),
            computed_at=parse_datetime(data.get("computed_at")) or utcnow(),
        )


# =============================================================================
# Statistics
# =============================================================================

def calculate_conversion_rate(conversions: int, participants: int) -> float:
    """Conversions over participants, 0 for an empty group."""
    return conversions / participants if participants > 0 else 0.0


def two_proportion_z_test(
    control_conversions: int,
    control_participants: int,
    variant_conversions: int,
    variant_participants: int,
) -> Tuple[float, float]:
    """
    Two-sided pooled z-test for a difference in conversion rates.

    Returns (z statistic, p-value). Degenerate groups yield (0, 1).
    """
    if control_participants == 0 or variant_participants == 0:
        return 0.0, 1.0

    p_c = control_conversions / control_participants
    p_v = variant_conversions / variant_participants
    pooled = (control_conversions + variant_conversions) / (
        control_participants + variant_participants
    )
    se = math.sqrt(
        pooled * (1 - pooled) * (1 / control_participants + 1 / variant_participants)
    )
    if se == 0:
        return 0.0, 1.0

    z = (p_v - p_c) / se
    p_value = 2 * (1 - stats.norm.cdf(abs(z)))
    return float(z), float(p_value)


def calculate_statistical_power(
    control_rate: float,
    variant_rate: float,
    participants_per_group: int,
    alpha: float,
) -> float:
    """Power of the two-proportion test to detect the observed difference."""
    delta = abs(variant_rate - control_rate)
    if delta == 0 or participants_per_group <= 0:
        return 0.0
    n = participants_per_group
    se0 = math.sqrt(2 * control_rate * (1 - control_rate) / n)
    se1 = math.sqrt(
        control_rate * (1 - control_rate) / n + variant_rate * (1 - variant_rate) / n
    )
    if se1 == 0:
        return 1.0
    z_alpha = stats.norm.ppf(1 - alpha / 2)
    return float(stats.norm.cdf((delta - z_alpha * se0) / se1))


def recommend_action(
    sample_sufficient: bool,
    is_significant: bool,
    lift_percentage: float,
    minimum_detectable_effect: float,
) -> RecommendedAction:
    if not sample_sufficient:
        return RecommendedAction.CONTINUE_TEST
    if not is_significant:
        return RecommendedAction.INCONCLUSIVE
    if lift_percentage >= minimum_detectable_effect:
        return RecommendedAction.IMPLEMENT_WINNER
    return RecommendedAction.STOP_TEST


# =============================================================================
# Calculator
# =============================================================================

class ResultsCalculator:
    """Computes ExperimentResults from an experiment and its assignments."""

    def compute(
        self,
        experiment: "Experiment",
        assignments: List["UserAssignment"],
    ) -> ExperimentResults:
        metrics = experiment.metrics
        total_participants = len(assignments)

        if total_participants < metrics.minimum_sample_size:
            return ExperimentResults(
                is_significant=False,
                confidence_level=metrics.confidence_level,
                total_participants=total_participants,
                recommended_action=RecommendedAction.CONTINUE_TEST,
                insights=[INSUFFICIENT_SAMPLE_INSIGHT],
            )

        participants: Dict[str, int] = {v.id: 0 for v in experiment.variants}
        conversions: Dict[str, int] = {v.id: 0 for v in experiment.variants}
        revenue: Dict[str, float] = {v.id: 0.0 for v in experiment.variants}
        for assignment in assignments:
            if assignment.variant_id not in participants:
                continue
            participants[assignment.variant_id] += 1
            if assignment.has_converted:
                conversions[assignment.variant_id] += 1
            revenue[assignment.variant_id] += assignment.conversion_value

        conversion_rates = {
            vid: calculate_conversion_rate(conversions[vid], participants[vid])
            for vid in participants
        }

        control = experiment.control_variant
        control_rate = conversion_rates[control.id]

        best = control
        for variant in experiment.variants:
            if conversion_rates[variant.id] > conversion_rates[best.id]:
                best = variant
        best_rate = conversion_rates[best.id]

        lift = (best_rate - control_rate) / control_rate * 100 if control_rate > 0 else 0.0

        # Significance compares the strongest challenger against control
        challengers = [v for v in experiment.variants if not v.is_control]
        challenger = max(challengers, key=lambda v: conversion_rates[v.id])
        _, p_value = two_proportion_z_test(
            conversions[control.id], participants[control.id],
            conversions[challenger.id], participants[challenger.id],
        )
        alpha = 1 - metrics.confidence_level / 100
        is_significant = p_value < alpha

        power = calculate_statistical_power(
            control_rate,
            conversion_rates[challenger.id],
            min(participants[control.id], participants[challenger.id]),
            alpha,
        )

        action = recommend_action(True, is_significant, lift, metrics.minimum_detectable_effect)
        insights = self._generate_insights(experiment, best, lift)

        logger.info(
            "Experiment results computed",
            experiment_id=experiment.id,
            participants=total_participants,
            p_value=round(p_value, 6),
            lift=round(lift, 2),
            action=action.value,
        )

        return ExperimentResults(
            is_significant=is_significant,
            confidence_level=metrics.confidence_level,
            total_participants=total_participants,
            recommended_action=action,
            insights=insights,
            winning_variant=best.id,
            lift_percentage=lift,
            p_value=p_value,
            conversion_rates=conversion_rates,
            revenue_per_variant=revenue,
            statistical_power=power,
        )

    def _generate_insights(
        self,
        experiment: "Experiment",
        best: "ExperimentVariant",
        lift: float,
    ) -> List[str]:
        insights: List[str] = []

        if lift > experiment.metrics.minimum_detectable_effect:
            insights.append(
                f"Winning variant shows {lift:.1f}% improvement over control."
            )

        design = best.config.get("package_design") or {}
        if design.get("color_scheme"):
            insights.append(f"{design['color_scheme']} color scheme performed best.")
        if design.get("button_style"):
            insights.append(f"{design['button_style']} button style performed best.")
        if design.get("show_discount"):
            insights.append("Showing discount badges improved conversion.")
        animation = design.get("animation_type")
        if animation and animation != "none":
            insights.append(f"{animation} animation increased engagement.")

        return insights
