"""Token cost accounting for panel runs."""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from ..models.verdicts import CostTotals, RunCost, TokenCost, TokenUsage

logger = structlog.get_logger(__name__)

# USD per 1M tokens: (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "claude-haiku-4.5": (0.80, 4.00),
    "claude-sonnet-4.5": (3.00, 15.00),
    "claude-opus-4": (15.00, 75.00),
    "gpt-4o": (2.50, 10.00),
    "gpt-4o-mini": (0.15, 0.60),
}

_ALIASES = {
    "claude-haiku-4-5-20251001": "claude-haiku-4.5",
    "claude-sonnet-4-5-20250929": "claude-sonnet-4.5",
}


def get_model_pricing(model: str) -> tuple[float, float] | None:
    """Look up per-1M-token pricing for a model.

    Accepts provider-prefixed OpenRouter ids (``anthropic/claude-haiku-4.5``)
    and dated Anthropic ids.
    """
    name = model.split("/", 1)[-1].lower()
    name = _ALIASES.get(name, name)
    return MODEL_PRICING.get(name)


def calculate_cost(usage: TokenUsage) -> TokenCost:
    """Calculate the USD cost of one call; unknown models cost 0."""
    pricing = get_model_pricing(usage.model)
    if pricing is None:
        logger.warning("model_pricing_unknown", model=usage.model)
        return TokenCost()

    input_price, output_price = pricing
    input_cost = usage.input_tokens / 1_000_000 * input_price
    output_cost = usage.output_tokens / 1_000_000 * output_price
    return TokenCost(
        input_cost=round(input_cost, 6),
        output_cost=round(output_cost, 6),
        total_cost=round(input_cost + output_cost, 6),
    )


def _add(totals: CostTotals, usage: TokenUsage, cost: TokenCost) -> CostTotals:
    return CostTotals(
        input_tokens=totals.input_tokens + usage.input_tokens,
        output_tokens=totals.output_tokens + usage.output_tokens,
        total_tokens=totals.total_tokens + usage.total_tokens,
        input_cost=round(totals.input_cost + cost.input_cost, 6),
        output_cost=round(totals.output_cost + cost.output_cost, 6),
        total_cost=round(totals.total_cost + cost.total_cost, 6),
    )


def summarize_run_cost(calls: Iterable[tuple[TokenUsage | None, TokenCost | None]]) -> RunCost:
    """Roll per-call usage and cost up into totals and a per-model breakdown."""
    run_cost = RunCost()
    for usage, cost in calls:
        if usage is None:
            continue
        cost = cost or calculate_cost(usage)
        run_cost.total = _add(run_cost.total, usage, cost)
        run_cost.by_model[usage.model] = _add(
            run_cost.by_model.get(usage.model, CostTotals()), usage, cost
        )
    return run_cost
