"""Consensus engine for Tier 2 and Tier 3 panels.

Pure aggregation: given a full panel of verdicts, produce the agreement
level, confidence score, recommendation and escalation decision. Nothing
here performs I/O, so the same inputs always give the same consensus.

Tier 2 verdicts are a tagged union. A panel made only of scored judgments is
aggregated numerically (mean, variance, standard deviation over polarity
bands); any panel containing a categorical judgment is aggregated by exact
vote counts, with scored judgments projected onto their band first.
"""

from __future__ import annotations

import math
import statistics
from collections import Counter
from collections.abc import Sequence

from ..core.config import ConsensusThresholds, settings
from ..core.exceptions import PanelEvaluationError
from ..models.verdicts import (
    AgentVerdict,
    AgreementLevel,
    CategoricalJudgment,
    CategoricalVerdict,
    Consensus,
    Recommendation,
    RiskLevel,
    ScoredJudgment,
    Tier3AgentVerdict,
    Tier3Consensus,
)

TIER2_PANEL_SIZE = 5
TIER3_PANEL_SIZE = 3


def score_band(score: int, thresholds: ConsensusThresholds) -> CategoricalVerdict:
    """Map a 1-10 score onto its polarity band."""
    if score >= thresholds.valid_score_min:
        return CategoricalVerdict.VALID
    if score <= thresholds.invalid_score_max:
        return CategoricalVerdict.INVALID
    return CategoricalVerdict.UNCERTAIN


def calculate_consensus(
    verdicts: Sequence[AgentVerdict],
    thresholds: ConsensusThresholds | None = None,
    panel_size: int = TIER2_PANEL_SIZE,
) -> Consensus:
    """Aggregate a Tier 2 panel into a consensus.

    Args:
        verdicts: Exactly ``panel_size`` agent verdicts
        thresholds: Band and confidence thresholds (defaults to settings)
        panel_size: Expected number of verdicts

    Returns:
        Consensus with agreement level, confidence, recommendation and
        the Tier 3 trigger

    Raises:
        PanelEvaluationError: If the panel is incomplete

    Example:
        >>> consensus = calculate_consensus(verdicts)
        >>> consensus.tier_3_trigger
        False
    """
    if len(verdicts) != panel_size:
        raise PanelEvaluationError(
            f"Consensus requires {panel_size} verdicts, got {len(verdicts)}"
        )

    thresholds = thresholds or settings.consensus_thresholds

    if all(isinstance(v.judgment, ScoredJudgment) for v in verdicts):
        return _numeric_consensus(verdicts, thresholds)
    return _categorical_consensus(verdicts, thresholds)


def _numeric_consensus(
    verdicts: Sequence[AgentVerdict], thresholds: ConsensusThresholds
) -> Consensus:
    scores = [v.judgment.score for v in verdicts]  # type: ignore[union-attr]
    n = len(scores)

    mean = statistics.fmean(scores)
    variance = statistics.pvariance(scores, mu=mean)
    stddev = math.sqrt(variance)

    bands = Counter(score_band(s, thresholds) for s in scores)
    counts = {verdict.value: bands.get(verdict, 0) for verdict in CategoricalVerdict}
    max_count = max(counts.values())

    if max_count == n and stddev <= thresholds.unanimous_max_stddev:
        agreement = AgreementLevel.UNANIMOUS
    elif max_count >= n - 1:
        agreement = AgreementLevel.STRONG
    else:
        agreement = AgreementLevel.SPLIT

    confidence = max_count / n - stddev * thresholds.stddev_confidence_penalty
    confidence = round(min(1.0, max(0.0, confidence)), 3)

    valid = counts[CategoricalVerdict.VALID.value]
    invalid = counts[CategoricalVerdict.INVALID.value]
    uncertain = counts[CategoricalVerdict.UNCERTAIN.value]

    if invalid > n / 2 or mean < thresholds.hallucinated_mean_max:
        recommendation = Recommendation.CITATION_LIKELY_HALLUCINATED
        reasoning = (
            f"Panel leans against validity: average score {mean:.1f}/10 "
            f"({valid} valid, {uncertain} uncertain, {invalid} invalid)."
        )
    elif (
        valid > n / 2
        and stddev <= thresholds.unanimous_max_stddev
        and mean >= thresholds.valid_mean_min
    ):
        recommendation = Recommendation.CITATION_LIKELY_VALID
        reasoning = (
            f"Panel assessed the citation as real: average score {mean:.1f}/10 "
            f"with standard deviation {stddev:.2f}."
        )
    else:
        recommendation = Recommendation.CITATION_UNCERTAIN
        reasoning = (
            f"Panel disagreement: average score {mean:.1f}/10, standard deviation "
            f"{stddev:.2f} ({valid} valid, {uncertain} uncertain, {invalid} invalid)."
        )

    concerns = [
        f"{v.agent}: {score}/10"
        for v, score in zip(verdicts, scores)
        if score_band(score, thresholds) != CategoricalVerdict.VALID
    ]
    if concerns:
        reasoning += f" Concerns: {'; '.join(concerns)}."

    return Consensus(
        agreement_level=agreement,
        confidence_score=confidence,
        recommendation=recommendation,
        reasoning=reasoning,
        tier_3_trigger=_needs_escalation(agreement, recommendation),
        verdict_counts=counts,
        scores=scores,
        average_score=round(mean, 3),
        variance=round(variance, 3),
        standard_deviation=round(stddev, 3),
    )


def _as_categorical(verdict: AgentVerdict, thresholds: ConsensusThresholds) -> CategoricalJudgment:
    judgment = verdict.judgment
    if isinstance(judgment, CategoricalJudgment):
        return judgment
    return CategoricalJudgment(verdict=score_band(judgment.score, thresholds))


def _categorical_consensus(
    verdicts: Sequence[AgentVerdict], thresholds: ConsensusThresholds
) -> Consensus:
    judgments = [_as_categorical(v, thresholds) for v in verdicts]
    n = len(judgments)

    tally = Counter(j.verdict for j in judgments)
    counts = {verdict.value: tally.get(verdict, 0) for verdict in CategoricalVerdict}
    max_count = max(counts.values())

    if max_count == n:
        agreement = AgreementLevel.UNANIMOUS
    elif max_count == n - 1:
        agreement = AgreementLevel.STRONG
    else:
        agreement = AgreementLevel.SPLIT

    confidence = round(max_count / n, 3)

    valid = counts[CategoricalVerdict.VALID.value]
    invalid = counts[CategoricalVerdict.INVALID.value]
    uncertain = counts[CategoricalVerdict.UNCERTAIN.value]

    if valid >= n - 1:
        recommendation = Recommendation.CITATION_LIKELY_VALID
        reasoning = f"Agents ({valid}/{n}) found no issues. Citation assessed as real."
    elif valid >= 2:
        recommendation = Recommendation.CITATION_UNCERTAIN
        reasoning = (
            f"Panel disagreement: {valid} valid, {invalid} invalid, {uncertain} uncertain. "
            "Citation has both credible and suspicious markers."
        )
    else:
        recommendation = Recommendation.CITATION_LIKELY_HALLUCINATED
        reasoning = (
            f"Majority finding against validity: {valid} valid, {invalid} invalid, "
            f"{uncertain} uncertain. Multiple validators flagged problems."
        )

    concerns = []
    for verdict, judgment in zip(verdicts, judgments):
        if judgment.verdict == CategoricalVerdict.INVALID and judgment.invalid_reason:
            concerns.append(f"{verdict.agent}: {judgment.invalid_reason}")
        elif judgment.verdict == CategoricalVerdict.UNCERTAIN and judgment.uncertain_reason:
            concerns.append(f"{verdict.agent}: {judgment.uncertain_reason}")
    if concerns:
        reasoning += f" Concerns: {'; '.join(concerns)}."

    return Consensus(
        agreement_level=agreement,
        confidence_score=confidence,
        recommendation=recommendation,
        reasoning=reasoning,
        tier_3_trigger=_needs_escalation(agreement, recommendation),
        verdict_counts=counts,
    )


def _needs_escalation(agreement: AgreementLevel, recommendation: Recommendation) -> bool:
    # Only a clean unanimous-valid panel settles a citation at Tier 2
    return not (
        agreement == AgreementLevel.UNANIMOUS
        and recommendation == Recommendation.CITATION_LIKELY_VALID
    )


def calculate_tier3_consensus(
    verdicts: Sequence[Tier3AgentVerdict],
    panel_size: int = TIER3_PANEL_SIZE,
) -> Tier3Consensus:
    """Aggregate a Tier 3 risk panel.

    The final risk level is the label with the most votes; ties go to the
    higher-risk label.

    Args:
        verdicts: Exactly ``panel_size`` risk verdicts
        panel_size: Expected number of verdicts

    Returns:
        Tier3Consensus with final risk level, counts and confidence

    Raises:
        PanelEvaluationError: If the panel is incomplete
    """
    if len(verdicts) != panel_size:
        raise PanelEvaluationError(
            f"Tier 3 consensus requires {panel_size} verdicts, got {len(verdicts)}"
        )

    tally = Counter(v.risk_level for v in verdicts)
    counts = {level.value: tally.get(level, 0) for level in RiskLevel}

    final = max(RiskLevel, key=lambda level: (tally.get(level, 0), level.severity))
    top = tally[final]
    n = len(verdicts)

    if top == n:
        agreement = AgreementLevel.UNANIMOUS
    elif top > n / 2:
        agreement = AgreementLevel.MAJORITY
    else:
        agreement = AgreementLevel.SPLIT

    summary = (
        f"{counts[RiskLevel.LOW_RISK.value]} low risk, "
        f"{counts[RiskLevel.MODERATE_RISK.value]} moderate risk, "
        f"{counts[RiskLevel.NEEDS_ADDITIONAL_REVIEW.value]} needs review"
    )
    if agreement == AgreementLevel.SPLIT:
        reasoning = f"No majority ({summary}); resolved to {final.value}."
    else:
        reasoning = f"{agreement.value.capitalize()} assessment of {final.value} ({summary})."

    supporting = [
        f"{v.agent}: {v.reasoning}" for v in verdicts if v.risk_level == final and v.reasoning
    ]
    if supporting:
        reasoning += f" Supporting reasoning: {' | '.join(supporting)}"

    return Tier3Consensus(
        final_risk_level=final,
        risk_level_counts=counts,
        agreement_level=agreement,
        confidence_score=round(top / n, 3),
        reasoning=reasoning,
    )
