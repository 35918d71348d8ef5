"""Tier 2 panel: five independent agents plus consensus."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from ..core.config import ConsensusThresholds
from ..core.exceptions import PanelEvaluationError
from ..models.citation import Citation
from ..models.verdicts import AgentVerdict, CitationValidation
from ..services.llm.verdict_provider import VerdictProvider
from .consensus import TIER2_PANEL_SIZE, calculate_consensus
from .pricing import summarize_run_cost
from .prompts import TIER2_AGENTS, AgentPersona

logger = structlog.get_logger(__name__)


async def gather_verdicts(
    provider: VerdictProvider,
    agents: Sequence[AgentPersona],
    evaluate_args: tuple,
) -> list:
    """Run every agent concurrently and return their verdicts in agent order.

    Raises:
        PanelEvaluationError: If any agent call fails; partial panels are
            never returned
    """
    results = await asyncio.gather(
        *(provider.evaluate(agent, *evaluate_args) for agent in agents),
        return_exceptions=True,
    )

    for agent, result in zip(agents, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            raise PanelEvaluationError(
                f"Agent {agent.name} failed: {result}", agent=agent.name
            ) from result

    return list(results)


class Tier2Panel:
    """Five-agent validity panel.

    Issues all agent calls concurrently and aggregates them with the
    consensus engine. Has no side effects; the caller persists the result.

    Example:
        >>> panel = Tier2Panel(LLMVerdictProvider())
        >>> result = await panel.evaluate(citation, context)
        >>> result.consensus.tier_3_trigger
        True
    """

    def __init__(
        self,
        provider: VerdictProvider,
        agents: Sequence[AgentPersona] = TIER2_AGENTS,
        thresholds: ConsensusThresholds | None = None,
    ):
        if len(agents) != TIER2_PANEL_SIZE:
            raise ValueError(f"Tier 2 panel needs {TIER2_PANEL_SIZE} agents, got {len(agents)}")
        self.provider = provider
        self.agents = tuple(agents)
        self.thresholds = thresholds

    async def evaluate(self, citation: Citation, context: str) -> CitationValidation:
        """Evaluate one citation.

        Args:
            citation: Citation to evaluate
            context: Surrounding document text

        Returns:
            CitationValidation with the five verdicts, consensus and run cost

        Raises:
            PanelEvaluationError: If any agent fails or returns the wrong shape
        """
        verdicts = await gather_verdicts(self.provider, self.agents, (citation, context))

        for agent, verdict in zip(self.agents, verdicts):
            if not isinstance(verdict, AgentVerdict):
                raise PanelEvaluationError(
                    f"Agent {agent.name} returned {type(verdict).__name__}, expected AgentVerdict",
                    agent=agent.name,
                )

        consensus = calculate_consensus(verdicts, self.thresholds, panel_size=TIER2_PANEL_SIZE)
        run_cost = summarize_run_cost((v.token_usage, v.cost) for v in verdicts)

        logger.info(
            "tier2_panel_completed",
            citation_id=citation.id,
            agreement=consensus.agreement_level.value,
            recommendation=consensus.recommendation.value,
            tier_3_trigger=consensus.tier_3_trigger,
            total_cost=run_cost.total.total_cost,
        )

        return CitationValidation(panel_evaluation=verdicts, consensus=consensus, run_cost=run_cost)
