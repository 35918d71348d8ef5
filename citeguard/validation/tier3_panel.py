"""Tier 3 escalation panel: three risk agents that see the Tier 2 result."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

import structlog

from ..core.exceptions import PanelEvaluationError
from ..models.citation import Citation
from ..models.verdicts import Tier3AgentVerdict, Tier3Result
from ..services.llm.verdict_provider import VerdictProvider
from .consensus import TIER3_PANEL_SIZE, calculate_tier3_consensus
from .pricing import summarize_run_cost
from .prompts import TIER3_AGENTS, AgentPersona
from .tier2_panel import gather_verdicts

logger = structlog.get_logger(__name__)


class Tier3Panel:
    """Three-agent risk panel run on escalated citations."""

    def __init__(
        self,
        provider: VerdictProvider,
        agents: Sequence[AgentPersona] = TIER3_AGENTS,
    ):
        if len(agents) != TIER3_PANEL_SIZE:
            raise ValueError(f"Tier 3 panel needs {TIER3_PANEL_SIZE} agents, got {len(agents)}")
        self.provider = provider
        self.agents = tuple(agents)

    async def evaluate(
        self,
        citation: Citation,
        context: str,
        tier2_result: dict[str, Any] | None,
        forced: bool = False,
    ) -> Tier3Result:
        """Evaluate one escalated citation.

        Args:
            citation: Citation to evaluate
            context: Surrounding document text
            tier2_result: Stored Tier 2 result, shown to every agent
            forced: True when escalation was requested by the caller rather
                than triggered by the Tier 2 consensus

        Returns:
            Tier3Result with the three verdicts and the risk consensus

        Raises:
            PanelEvaluationError: If any agent fails or returns the wrong shape
        """
        verdicts = await gather_verdicts(
            self.provider, self.agents, (citation, context, tier2_result)
        )

        for agent, verdict in zip(self.agents, verdicts):
            if not isinstance(verdict, Tier3AgentVerdict):
                raise PanelEvaluationError(
                    f"Agent {agent.name} returned {type(verdict).__name__}, "
                    "expected Tier3AgentVerdict",
                    agent=agent.name,
                )

        consensus = calculate_tier3_consensus(verdicts, panel_size=TIER3_PANEL_SIZE)
        run_cost = summarize_run_cost((v.token_usage, v.cost) for v in verdicts)

        logger.info(
            "tier3_panel_completed",
            citation_id=citation.id,
            final_risk_level=consensus.final_risk_level.value,
            agreement=consensus.agreement_level.value,
            forced=forced,
        )

        return Tier3Result(
            panel_evaluation=verdicts,
            consensus=consensus,
            reasoning=consensus.reasoning,
            timestamp=datetime.now(timezone.utc),
            forced=forced,
            run_cost=run_cost,
        )
