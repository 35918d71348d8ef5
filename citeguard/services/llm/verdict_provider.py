"""Verdict providers: the boundary between panels and language models.

A provider takes a persona, a citation and its document context and
returns one agent verdict. Panels only depend on the ``VerdictProvider``
protocol, so tests can swap in a scripted provider.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol

import structlog

from ...core.config import settings
from ...models.citation import Citation
from ...models.verdicts import AgentVerdict, Tier3AgentVerdict, TokenUsage
from ...validation.pricing import calculate_cost
from ...validation.prompts import AgentPersona
from ...validation.response_parser import parse_agent_response, parse_tier3_agent_response
from .openrouter_client import OpenRouterClient
from .schemas import ChatMessage, ChatResult

logger = structlog.get_logger(__name__)


class VerdictProvider(Protocol):
    """Produces one agent verdict for one citation."""

    async def evaluate(
        self,
        persona: AgentPersona,
        citation: Citation,
        context: str,
        tier2_result: dict[str, Any] | None = None,
    ) -> AgentVerdict | Tier3AgentVerdict:
        """Evaluate a citation as ``persona``.

        Returns an ``AgentVerdict`` for Tier 2 personas and a
        ``Tier3AgentVerdict`` for Tier 3 personas. Raises on provider
        failure; panels treat any exception as a failed panel.
        """
        ...


class LLMVerdictProvider:
    """Verdict provider backed by OpenRouter chat completions.

    Tier 2 personas go to the Tier 2 model, Tier 3 personas to the
    Tier 3 model. Clients are created lazily so importing this module
    never requires an API key.
    """

    def __init__(
        self,
        tier2_client: OpenRouterClient | None = None,
        tier3_client: OpenRouterClient | None = None,
    ):
        self._tier2_client = tier2_client
        self._tier3_client = tier3_client

    def _client_for(self, persona: AgentPersona) -> OpenRouterClient:
        if persona.tier == "tier3":
            if self._tier3_client is None:
                self._tier3_client = OpenRouterClient(llm_config=settings.tier3_llm_config)
            return self._tier3_client
        if self._tier2_client is None:
            self._tier2_client = OpenRouterClient(llm_config=settings.tier2_llm_config)
        return self._tier2_client

    async def evaluate(
        self,
        persona: AgentPersona,
        citation: Citation,
        context: str,
        tier2_result: dict[str, Any] | None = None,
    ) -> AgentVerdict | Tier3AgentVerdict:
        client = self._client_for(persona)
        prompt = persona.build_prompt(citation, context, tier2_result)
        result = await client.chat([ChatMessage(role="user", content=prompt)])

        usage = _token_usage(result, client.model)
        cost = calculate_cost(usage)
        timestamp = datetime.now(timezone.utc)

        logger.debug(
            "agent_verdict_received",
            agent=persona.name,
            citation_id=citation.id,
            total_tokens=usage.total_tokens,
        )

        if persona.tier == "tier3":
            parsed_risk = parse_tier3_agent_response(result.content, persona.name)
            return Tier3AgentVerdict(
                agent=persona.name,
                risk_level=parsed_risk.risk_level,
                reasoning=parsed_risk.reasoning,
                timestamp=timestamp,
                model=client.model,
                token_usage=usage,
                cost=cost,
            )

        parsed = parse_agent_response(result.content, persona.name)
        return AgentVerdict(
            agent=persona.name,
            judgment=parsed.judgment,
            reasoning=parsed.reasoning,
            timestamp=timestamp,
            model=client.model,
            token_usage=usage,
            cost=cost,
        )


def _token_usage(result: ChatResult, model: str) -> TokenUsage:
    return TokenUsage(
        input_tokens=result.usage.prompt_tokens,
        output_tokens=result.usage.completion_tokens,
        total_tokens=result.usage.total_tokens,
        model=model,
    )
