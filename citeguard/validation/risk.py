"""Roll a citation's tier results up into one risk level."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from ..models.citation import Citation
from ..models.verdicts import Recommendation, RiskLevel

_RECOMMENDATION_RISK = {
    Recommendation.CITATION_LIKELY_VALID.value: RiskLevel.LOW_RISK,
    Recommendation.CITATION_UNCERTAIN.value: RiskLevel.MODERATE_RISK,
    Recommendation.CITATION_LIKELY_HALLUCINATED.value: RiskLevel.NEEDS_ADDITIONAL_REVIEW,
}


def citation_risk_level(citation: Citation) -> RiskLevel | None:
    """Return the effective risk level of a citation.

    Tier 3 wins when present. Otherwise the Tier 2 average score decides
    (>= 8 low, >= 5 moderate, else needs review), falling back to the Tier 2
    recommendation for categorical panels.

    Returns:
        RiskLevel, or None when the citation has not been validated
    """
    if not citation.validation:
        return None

    if citation.tier_3:
        final = (citation.tier_3.get("consensus") or {}).get("final_risk_level")
        if final in RiskLevel.__members__:
            return RiskLevel(final)

    consensus = citation.validation.get("consensus") or {}
    average = consensus.get("average_score")
    if isinstance(average, (int, float)):
        if average >= 8.0:
            return RiskLevel.LOW_RISK
        if average >= 5.0:
            return RiskLevel.MODERATE_RISK
        return RiskLevel.NEEDS_ADDITIONAL_REVIEW

    return _RECOMMENDATION_RISK.get(consensus.get("recommendation"), RiskLevel.MODERATE_RISK)


def risk_statistics(citations: Iterable[Citation]) -> dict[str, int]:
    """Count validated citations per risk level."""
    counts: Counter[RiskLevel] = Counter()
    total = 0
    for citation in citations:
        level = citation_risk_level(citation)
        if level is None:
            continue
        counts[level] += 1
        total += 1
    return {
        "low_risk": counts[RiskLevel.LOW_RISK],
        "moderate_risk": counts[RiskLevel.MODERATE_RISK],
        "needs_review": counts[RiskLevel.NEEDS_ADDITIONAL_REVIEW],
        "total": total,
    }
