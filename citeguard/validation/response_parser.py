"""Parsers for raw agent responses.

Tier 2 agents are asked for ``SCORE: <1-10>`` plus ``REASONING:``. Older
prompt styles answered with a JSON ``label`` or a bare ``VALID`` /
``INVALID <code>`` / ``UNCERTAIN <code>`` line; those still parse into a
categorical judgment. Tier 3 agents answer with ``RISK_LEVEL:`` plus
``REASONING:``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

import structlog

from ..models.verdicts import (
    CategoricalJudgment,
    CategoricalVerdict,
    Judgment,
    RiskLevel,
    ScoredJudgment,
)

logger = structlog.get_logger(__name__)

KNOWN_INVALID_REASONS = (
    "reporter_court_mismatch",
    "volume_impossible",
    "page_unreasonable",
    "reporter_timing_wrong",
    "year_implausible",
    "temporal_impossibility",
    "anachronistic_issue",
    "historical_mismatch",
    "future_dated",
    "case_type_implausible",
    "characteristics_mismatch",
    "party_role_impossible",
    "entity_type_impossible",
    "inconsistent_with_knowledge",
    "unknown_authority",
    "doctrine_impossible",
    "jurisdiction_mismatch",
    "cross_dimension_contradiction",
    "structural_incoherence",
    "authority_category_mismatch",
    "impossible_combination",
)

KNOWN_UNCERTAIN_REASONS = (
    "unusual_volume_page",
    "reporter_edge_case",
    "timing_questionable",
    "names_generic_but_possible",
    "unusual_pairing",
    "characteristics_unclear",
    "early_in_reporter_series",
    "edge_of_legal_development",
    "timing_unusual_but_possible",
    "unfamiliar_but_possible",
    "edge_case_authority",
    "weak_signals_both_ways",
    "mixed_signals",
    "insufficient_evidence",
    "unusual_but_not_invalid",
)

_SCORE_PATTERNS = (
    re.compile(r"SCORE:\s*(\d+)", re.IGNORECASE),
    re.compile(r"SCORE\s*(\d+)", re.IGNORECASE),
    re.compile(r"(?:^|\s)(\d{1,2})(?:\s|$)"),
)
_REASONING_PATTERNS = (
    re.compile(r"REASONING:\s*([\s\S]*?)(?:\n\n|\nSCORE:|$)", re.IGNORECASE),
    re.compile(r"REASONING:\s*([\s\S]*)", re.IGNORECASE),
)
_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

_TIER3_LABELS = ("RISK_LEVEL:", "REASONING:", "VERDICT:", "INVALID_REASON:", "UNCERTAIN_REASON:")


@dataclass(frozen=True)
class ParsedVerdict:
    """Tier 2 parse result."""

    judgment: Judgment
    reasoning: str


@dataclass(frozen=True)
class ParsedRiskVerdict:
    """Tier 3 parse result."""

    risk_level: RiskLevel
    reasoning: str


def parse_agent_response(response_text: str, agent_name: str) -> ParsedVerdict:
    """Parse a Tier 2 agent response.

    Args:
        response_text: Raw model output
        agent_name: Agent identity, used for logging

    Returns:
        ParsedVerdict holding a scored judgment when a 1-10 score is present,
        otherwise a categorical judgment (``UNCERTAIN`` when nothing parses)

    Example:
        >>> parse_agent_response("SCORE: 9\\nREASONING: Real reporter.", "a").judgment.score
        9
    """
    for pattern in _SCORE_PATTERNS:
        match = pattern.search(response_text)
        if not match:
            continue
        score = int(match.group(1))
        if 1 <= score <= 10:
            return ParsedVerdict(
                judgment=ScoredJudgment(score=score),
                reasoning=_extract_score_reasoning(response_text),
            )
        break

    parsed = _parse_json_label(response_text)
    if parsed is not None:
        return parsed

    return _parse_keywords(response_text, agent_name)


def _extract_score_reasoning(response_text: str) -> str:
    for pattern in _REASONING_PATTERNS:
        match = pattern.search(response_text)
        if match:
            return match.group(1).strip()
    return ""


def _parse_json_label(response_text: str) -> ParsedVerdict | None:
    text = _CODE_FENCE.sub("", response_text.strip()).strip()
    match = _JSON_OBJECT.search(text)
    if match:
        text = match.group(0)

    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None

    if not isinstance(payload, dict):
        return None

    label = payload.get("label")
    if label not in CategoricalVerdict.__members__:
        return None

    verdict = CategoricalVerdict(label)
    reason = str(payload.get("reason") or "")[:100] or None
    return ParsedVerdict(
        judgment=CategoricalJudgment(
            verdict=verdict,
            invalid_reason=reason if verdict == CategoricalVerdict.INVALID else None,
            uncertain_reason=reason if verdict == CategoricalVerdict.UNCERTAIN else None,
        ),
        reasoning=str(payload.get("reason") or ""),
    )


def _find_reason(response_text: str, keyword: str, known: tuple[str, ...]) -> str | None:
    for pattern in (
        rf"{keyword}[:\s]+([a-z_]+)",
        r"reason[:\s]+([a-z_]+)",
        r"code[:\s]+([a-z_]+)",
    ):
        match = re.search(pattern, response_text, re.IGNORECASE)
        if match:
            return match.group(1).lower().strip()

    normalized = response_text.upper()
    for reason in known:
        spaced = reason.upper().replace("_", " ")
        if spaced in normalized or reason.replace("_", "-") in response_text:
            return reason
    return None


def _parse_keywords(response_text: str, agent_name: str) -> ParsedVerdict:
    normalized = response_text.strip().upper()
    verdict = CategoricalVerdict.UNCERTAIN
    invalid_reason = None
    uncertain_reason = None

    if "VALID" in normalized and "INVALID" not in normalized:
        verdict = CategoricalVerdict.VALID

    if "INVALID" in normalized:
        verdict = CategoricalVerdict.INVALID
        invalid_reason = _find_reason(response_text, "invalid", KNOWN_INVALID_REASONS)

    if "UNCERTAIN" in normalized:
        verdict = CategoricalVerdict.UNCERTAIN
        invalid_reason = None
        uncertain_reason = _find_reason(response_text, "uncertain", KNOWN_UNCERTAIN_REASONS)

    if verdict == CategoricalVerdict.UNCERTAIN and "UNCERTAIN" not in normalized:
        uncertain_reason = "parse_error"
        logger.warning(
            "agent_response_unparsed",
            agent=agent_name,
            response=response_text[:200],
        )

    return ParsedVerdict(
        judgment=CategoricalJudgment(
            verdict=verdict,
            invalid_reason=invalid_reason,
            uncertain_reason=uncertain_reason,
        ),
        reasoning=response_text.strip()[:500],
    )


def _risk_from_text(text: str) -> RiskLevel | None:
    upper = text.upper()
    if (
        "NEEDS_ADDITIONAL_REVIEW" in upper
        or "NEEDS ADDITIONAL" in upper
        or "ADDITIONAL_REVIEW" in upper
    ):
        return RiskLevel.NEEDS_ADDITIONAL_REVIEW
    if "MODERATE" in upper:
        return RiskLevel.MODERATE_RISK
    if "LOW" in upper:
        return RiskLevel.LOW_RISK
    return None


def _risk_from_legacy_verdict(text: str) -> RiskLevel | None:
    upper = text.upper()
    if "INVALID" in upper:
        return RiskLevel.NEEDS_ADDITIONAL_REVIEW
    if "UNCERTAIN" in upper:
        return RiskLevel.MODERATE_RISK
    if "VALID" in upper:
        return RiskLevel.LOW_RISK
    return None


def parse_tier3_agent_response(response_text: str, agent_name: str) -> ParsedRiskVerdict:
    """Parse a Tier 3 agent response.

    Looks for a ``RISK_LEVEL:`` line first, then a legacy ``VERDICT:`` line,
    then any risk label anywhere in the text. Falls back to
    ``MODERATE_RISK`` when nothing matches.

    Args:
        response_text: Raw model output
        agent_name: Agent identity, used for logging

    Returns:
        ParsedRiskVerdict with risk level and reasoning
    """
    lines = [line.strip() for line in response_text.splitlines() if line.strip()]

    risk_level: RiskLevel | None = None
    risk_line = next((line for line in lines if line.upper().startswith("RISK_LEVEL:")), None)
    if risk_line is not None:
        risk_level = _risk_from_text(risk_line[len("RISK_LEVEL:"):])

    if risk_level is None:
        verdict_line = next(
            (line for line in lines if line.upper().startswith("VERDICT:")), None
        )
        if verdict_line is not None:
            risk_level = _risk_from_legacy_verdict(verdict_line[len("VERDICT:"):])

    if risk_level is None:
        upper = response_text.upper()
        for label in (
            RiskLevel.NEEDS_ADDITIONAL_REVIEW,
            RiskLevel.MODERATE_RISK,
            RiskLevel.LOW_RISK,
        ):
            if label.value in upper:
                risk_level = label
                break

    if risk_level is None:
        logger.warning(
            "tier3_response_unparsed",
            agent=agent_name,
            response=response_text[:200],
        )
        risk_level = RiskLevel.MODERATE_RISK

    return ParsedRiskVerdict(
        risk_level=risk_level,
        reasoning=_extract_tier3_reasoning(lines, response_text),
    )


def _extract_tier3_reasoning(lines: list[str], response_text: str) -> str:
    start = next(
        (i for i, line in enumerate(lines) if line.upper().startswith("REASONING:")), None
    )
    if start is not None:
        parts = [lines[start][len("REASONING:"):].strip()]
        for line in lines[start + 1:]:
            if line.upper().startswith(_TIER3_LABELS):
                break
            parts.append(line)
        reasoning = " ".join(p for p in parts if p)
        if reasoning:
            return reasoning

    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", response_text) if p.strip()]
    if paragraphs:
        return paragraphs[0]
    return "No reasoning provided"
