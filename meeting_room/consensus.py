"""Consensus math over 1-10 tendency scores.

Support and oppose rates are normalised independently and are not
complementary: support measures closeness to unanimous 10s, oppose closeness
to unanimous 1s, so a split panel can score low on both.
"""

from dataclasses import dataclass, field

DEFAULT_THRESHOLD = 0.7

# Largest possible population variance on the 1-10 scale.
_MAX_VARIANCE = 25.0

_RECENT_ROUNDS = 3


@dataclass
class BasicConsensus:
    support_rate: float
    oppose_rate: float
    consensus_reached: bool
    threshold: float
    final_scores: dict[str, int] = field(default_factory=dict)


@dataclass
class WeightedConsensus:
    weighted_support_rate: float
    weighted_oppose_rate: float
    consensus_reached: bool
    threshold: float
    weighted_scores: dict[str, float] = field(default_factory=dict)
    confidence_level: float = 0.0


@dataclass
class DynamicConsensus:
    trend_direction: str         # "converging", "diverging", "stable"
    convergence_rate: float
    predicted_consensus: float
    stability_index: float


@dataclass
class ConsensusReport:
    basic: BasicConsensus
    weighted: WeightedConsensus
    dynamic: DynamicConsensus
    overall_consensus: str       # "strong", "moderate", "weak", "none"
    recommendation: str
    next_steps: list[str]


_VERDICTS: dict[str, tuple[str, list[str]]] = {
    "strong": (
        "Strong consensus reached; the debate can close and move to action.",
        ["Summarise the key arguments", "Draft an implementation plan", "Assign follow-up tasks"],
    ),
    "moderate": (
        "Moderate consensus; one or two more rounds should consolidate positions.",
        ["Dig into the remaining disagreements", "Gather more supporting evidence", "Look for a compromise"],
    ),
    "weak": (
        "Consensus is weak; more rounds are needed to narrow the gap.",
        ["Revisit the core question", "Bring in new perspectives or experts", "Adjust the debate strategy"],
    ),
    "none": (
        "No consensus yet; consider reframing the topic or changing participants.",
        ["Re-examine how the topic is defined", "Add or replace participants", "Adjust the debate rules"],
    ),
}


def _mean(scores: list[float]) -> float:
    return sum(scores) / len(scores)


def _variance(scores: list[float]) -> float:
    avg = _mean(scores)
    return sum((s - avg) ** 2 for s in scores) / len(scores)


def calculate_basic_consensus(
    scores: list[int],
    threshold: float = DEFAULT_THRESHOLD,
) -> BasicConsensus:
    """Support = sum/10n, oppose = sum(10 - s)/9n; reached when either beats threshold."""
    if not scores:
        return BasicConsensus(0.0, 0.0, False, threshold)

    n = len(scores)
    total = sum(scores)
    max_total = 10 * n
    min_total = n

    support_rate = total / max_total
    oppose_rate = (max_total - total) / (max_total - min_total)

    return BasicConsensus(
        support_rate=support_rate,
        oppose_rate=oppose_rate,
        consensus_reached=support_rate > threshold or oppose_rate > threshold,
        threshold=threshold,
        final_scores={f"persona_{i}": s for i, s in enumerate(scores)},
    )


def calculate_weighted_consensus(
    scores: list[int],
    weights: list[float] | None = None,
    threshold: float = DEFAULT_THRESHOLD,
) -> WeightedConsensus:
    """Weighted support/oppose plus a variance-based confidence level.

    Weights are normalised to sum to 1; missing or mismatched weights fall
    back to uniform.
    """
    if not scores:
        return WeightedConsensus(0.0, 0.0, False, threshold)

    n = len(scores)
    if weights and len(weights) == n and sum(weights) > 0:
        weight_sum = sum(weights)
        normalized = [w / weight_sum for w in weights]
    else:
        normalized = [1 / n] * n

    weighted_total = sum(s * w for s, w in zip(scores, normalized))
    max_weighted = sum(10 * w for w in normalized)
    min_weighted = sum(normalized)

    support = weighted_total / max_weighted
    oppose = (max_weighted - weighted_total) / (max_weighted - min_weighted)
    confidence = max(0.0, 1 - _variance(scores) / _MAX_VARIANCE)

    return WeightedConsensus(
        weighted_support_rate=support,
        weighted_oppose_rate=oppose,
        consensus_reached=support > threshold or oppose > threshold,
        threshold=threshold,
        weighted_scores={f"persona_{i}": s * w for i, (s, w) in enumerate(zip(scores, normalized))},
        confidence_level=confidence,
    )


def calculate_dynamic_consensus(historical_scores: list[list[int]]) -> DynamicConsensus:
    """Trend of per-round score variance over the last (up to) three rounds."""
    rounds = [r for r in historical_scores if r]
    if len(rounds) < 2:
        return DynamicConsensus("stable", 0.0, 5.0, 0.0)

    variances = [_variance(r) for r in rounds]
    recent = variances[-_RECENT_ROUNDS:]
    oldest, newest = recent[0], recent[-1]

    if newest < oldest:
        trend = "converging"
    elif newest > oldest:
        trend = "diverging"
    else:
        trend = "stable"

    convergence_rate = (oldest - newest) / oldest if oldest else 0.0
    predicted = min(10.0, max(1.0, _mean(rounds[-1]) + convergence_rate * 2))
    stability = max(0.0, 1 - variances[-1] / _MAX_VARIANCE)

    return DynamicConsensus(
        trend_direction=trend,
        convergence_rate=convergence_rate,
        predicted_consensus=predicted,
        stability_index=stability,
    )


def generate_consensus_report(
    scores: list[int],
    weights: list[float] | None = None,
    historical_scores: list[list[int]] | None = None,
    threshold: float = DEFAULT_THRESHOLD,
) -> ConsensusReport:
    """Combine basic, weighted and dynamic views into one verdict."""
    basic = calculate_basic_consensus(scores, threshold)
    weighted = calculate_weighted_consensus(scores, weights, threshold)
    dynamic = calculate_dynamic_consensus(historical_scores or [])

    if basic.consensus_reached and weighted.consensus_reached and weighted.confidence_level > 0.8:
        overall = "strong"
    elif basic.consensus_reached or weighted.consensus_reached:
        overall = "moderate"
    elif max(basic.support_rate, basic.oppose_rate) > 0.5:
        overall = "weak"
    else:
        overall = "none"

    recommendation, next_steps = _VERDICTS[overall]
    return ConsensusReport(
        basic=basic,
        weighted=weighted,
        dynamic=dynamic,
        overall_consensus=overall,
        recommendation=recommendation,
        next_steps=list(next_steps),
    )
