"""Verdict, consensus and tier result models.

A Tier 2 agent produces either a numeric certainty score or a categorical
verdict. Both are carried as one tagged union (``Judgment``) discriminated by
``kind`` so aggregation can pattern-match on the variant instead of probing
for optional fields.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class CategoricalVerdict(str, Enum):
    """Categorical Tier 2 verdicts."""

    VALID = "VALID"
    INVALID = "INVALID"
    UNCERTAIN = "UNCERTAIN"


class RiskLevel(str, Enum):
    """Tier 3 risk vocabulary, ordered from lowest to highest risk."""

    LOW_RISK = "LOW_RISK"
    MODERATE_RISK = "MODERATE_RISK"
    NEEDS_ADDITIONAL_REVIEW = "NEEDS_ADDITIONAL_REVIEW"

    @property
    def severity(self) -> int:
        return _RISK_SEVERITY[self]


_RISK_SEVERITY = {
    RiskLevel.LOW_RISK: 0,
    RiskLevel.MODERATE_RISK: 1,
    RiskLevel.NEEDS_ADDITIONAL_REVIEW: 2,
}


class AgreementLevel(str, Enum):
    """How concentrated a panel's verdicts are."""

    UNANIMOUS = "unanimous"
    STRONG = "strong"
    MAJORITY = "majority"
    SPLIT = "split"


class Recommendation(str, Enum):
    """Tier 2 recommendation labels."""

    CITATION_LIKELY_VALID = "CITATION_LIKELY_VALID"
    CITATION_UNCERTAIN = "CITATION_UNCERTAIN"
    CITATION_LIKELY_HALLUCINATED = "CITATION_LIKELY_HALLUCINATED"


class ScoredJudgment(BaseModel):
    """Certainty score from 1 (fabricated) to 10 (certainly real)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["scored"] = "scored"
    score: int = Field(..., ge=1, le=10)


class CategoricalJudgment(BaseModel):
    """Categorical verdict with an optional reason code."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["categorical"] = "categorical"
    verdict: CategoricalVerdict
    invalid_reason: str | None = None
    uncertain_reason: str | None = None


Judgment = Annotated[Union[ScoredJudgment, CategoricalJudgment], Field(discriminator="kind")]


class TokenUsage(BaseModel):
    """Token usage for one agent call."""

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    provider: str = "openrouter"
    model: str = ""


class TokenCost(BaseModel):
    """USD cost of one agent call."""

    input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0
    currency: Literal["USD"] = "USD"


class AgentVerdict(BaseModel):
    """One Tier 2 panel member's output. Immutable once produced."""

    model_config = ConfigDict(frozen=True)

    agent: str = Field(..., description="Agent identity, e.g. citation_authority_validator_v1")
    judgment: Judgment
    reasoning: str = ""
    timestamp: datetime
    model: str
    token_usage: TokenUsage | None = None
    cost: TokenCost | None = None


class Tier3AgentVerdict(BaseModel):
    """One Tier 3 panel member's risk assessment."""

    model_config = ConfigDict(frozen=True)

    agent: str
    risk_level: RiskLevel
    reasoning: str = ""
    timestamp: datetime
    model: str
    token_usage: TokenUsage | None = None
    cost: TokenCost | None = None


class Consensus(BaseModel):
    """Tier 2 consensus over a five-agent panel.

    Numeric panels fill ``scores`` and the score statistics; categorical
    panels fill ``verdict_counts``. Both fill ``verdict_counts`` for numeric
    panels too, counting scores per polarity band.
    """

    agreement_level: AgreementLevel
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    recommendation: Recommendation
    reasoning: str
    tier_3_trigger: bool
    verdict_counts: dict[str, int]
    scores: list[int] | None = None
    average_score: float | None = None
    variance: float | None = None
    standard_deviation: float | None = None


class Tier3Consensus(BaseModel):
    """Tier 3 consensus over a three-agent risk panel."""

    final_risk_level: RiskLevel
    risk_level_counts: dict[str, int]
    agreement_level: AgreementLevel
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    reasoning: str


class CostTotals(BaseModel):
    """Token and cost totals for a group of calls."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0
    currency: Literal["USD"] = "USD"


class RunCost(BaseModel):
    """Cost of one panel run, overall and per model."""

    total: CostTotals = Field(default_factory=CostTotals)
    by_model: dict[str, CostTotals] = Field(default_factory=dict)


class CitationValidation(BaseModel):
    """Tier 2 result stored on the citation (``validation`` / ``tier_2``)."""

    panel_evaluation: list[AgentVerdict]
    consensus: Consensus
    run_cost: RunCost | None = None


class Tier3Result(BaseModel):
    """Tier 3 result stored on the citation (``tier_3``)."""

    panel_evaluation: list[Tier3AgentVerdict]
    consensus: Tier3Consensus
    reasoning: str
    timestamp: datetime
    forced: bool = False
    run_cost: RunCost | None = None
