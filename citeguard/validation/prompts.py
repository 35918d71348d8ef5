"""Agent personas and prompt templates for the Tier 2 and Tier 3 panels."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Literal

from ..models.citation import Citation

Tier = Literal["tier2", "tier3"]

_SCORE_INSTRUCTIONS = """Rate how likely it is that this citation refers to a real legal authority,
on a scale from 1 to 10:
- 1-3: almost certainly fabricated (concrete, objective defects)
- 4-6: uncertain (unusual aspects, insufficient information)
- 7-10: plausible to almost certainly real

Respond in exactly this format:

SCORE: <integer 1-10>
REASONING: <2-3 sentences>"""

_RISK_INSTRUCTIONS = """Assess the RISK LEVEL:
- LOW_RISK: Citation appears authentic and reliable. You would rely on it in court.
- MODERATE_RISK: Some concerns exist but the citation may still be valid. Needs verification.
- NEEDS_ADDITIONAL_REVIEW: Significant concerns suggest the citation may be fabricated or
  incorrect. Requires human review.

Key rules:
- Generic or common party names are neutral, not evidence of fabrication.
- A citation that fits the argument well is normal lawyering, not a warning sign.
- Unfamiliarity alone is not a reason to call an authority fabricated.
- NEEDS_ADDITIONAL_REVIEW requires at least one concrete defect in structure, metadata,
  timing or doctrine. Pattern-based concerns alone mean MODERATE_RISK.
- Prefer MODERATE_RISK when information is incomplete.

Respond in exactly this format:

RISK_LEVEL: LOW_RISK | MODERATE_RISK | NEEDS_ADDITIONAL_REVIEW
REASONING: <2-3 sentences>"""


@dataclass(frozen=True)
class AgentPersona:
    """One panel member.

    Attributes:
        name: Stable agent identity recorded on every verdict
        tier: Panel the persona belongs to
        role: Opening line describing who the agent is
        focus: Checklist the agent works through
    """

    name: str
    tier: Tier
    role: str
    focus: tuple[str, ...]

    def build_prompt(
        self,
        citation: Citation,
        context: str,
        tier2_result: dict[str, Any] | None = None,
    ) -> str:
        """Render the full prompt for one citation."""
        sections = [
            self.role,
            "",
            f"Citation: {citation.citation_text}",
            f"Citation Type: {citation.citation_type}",
            f"Components: {_format_components(citation)}",
            f"Document Context: {context or 'N/A'}",
            "",
            "Consider:",
            *(f"- {item}" for item in self.focus),
            "",
        ]
        if self.tier == "tier3":
            if tier2_result:
                sections += [_format_tier2_summary(tier2_result), ""]
            sections.append(_RISK_INSTRUCTIONS)
        else:
            sections.append(_SCORE_INSTRUCTIONS)
        return "\n".join(sections)


def _format_components(citation: Citation) -> str:
    components = {k: v for k, v in citation.extracted_components.items() if v not in (None, "", [])}
    if not components:
        return "See citation text"
    return json.dumps(components, ensure_ascii=False, sort_keys=True)


def _format_tier2_summary(tier2_result: dict[str, Any]) -> str:
    consensus = tier2_result.get("consensus") or {}
    lines = [
        "An initial five-agent screening panel was not conclusive:",
        f"- Agreement: {consensus.get('agreement_level', 'unknown')}",
        f"- Recommendation: {consensus.get('recommendation', 'unknown')}",
    ]
    if consensus.get("scores"):
        lines.append(
            f"- Scores: {consensus['scores']} (average {consensus.get('average_score')})"
        )
    if consensus.get("reasoning"):
        lines.append(f"- Summary: {consensus['reasoning']}")
    lines.append("Form your own view; the screening result is context, not a conclusion.")
    return "\n".join(lines)


TIER2_AGENTS: tuple[AgentPersona, ...] = (
    AgentPersona(
        name="citation_authority_validator_v1",
        tier="tier2",
        role=(
            "You are a legal citation authority validator. Assess whether this citation's "
            "court, reporter and publication details are plausible."
        ),
        focus=(
            "Are this court's decisions published in this reporter?",
            "Are volume and page numbers reasonable for the reporter and year?",
            "Was the reporter itself in use during this year?",
            "You are judging whether this COULD be a real publication, not verifying it.",
        ),
    ),
    AgentPersona(
        name="case_ecology_validator_v1",
        tier="tier2",
        role=(
            "You are a case ecology validator. Assess whether the party names, case type "
            "and characteristics fit realistic litigation patterns."
        ),
        focus=(
            "Do the party names sound like real individuals, companies or government bodies?",
            "Is the case type (civil, criminal, administrative) plausible for the context?",
            "Real cases often have boring names; judge the overall pattern, not blandness.",
        ),
    ),
    AgentPersona(
        name="temporal_reality_validator_v1",
        tier="tier2",
        role=(
            "You are a temporal reality validator. Assess whether this citation's timeline "
            "makes historical and legal sense."
        ),
        focus=(
            "Would the court and reporter have existed in this year?",
            "Was the legal issue discussed a live question at that time?",
            "If it is a statute, would it have existed in this form at this time?",
        ),
    ),
    AgentPersona(
        name="legal_knowledge_validator_v1",
        tier="tier2",
        role=(
            "You are a legal knowledge validator. Using your knowledge of American courts, "
            "reporters, statutes and case law, assess whether this citation is real."
        ),
        focus=(
            "Legal citation formats and practices",
            "Court systems and reporter publications",
            "How lawyers typically cite authority for this kind of point",
        ),
    ),
    AgentPersona(
        name="reality_assessment_expert_v1",
        tier="tier2",
        role=(
            "You are a reality assessment expert. Synthesize what you know about legal "
            "citations and hallucination patterns into a final assessment."
        ),
        focus=(
            "Does the citation have the characteristics of real legal authority?",
            "Are there patterns that suggest invention (round page numbers, example-like "
            "party names, combinations that feel constructed)?",
            "Real citations are often messier than invented ones.",
        ),
    ),
)

TIER3_AGENTS: tuple[AgentPersona, ...] = (
    AgentPersona(
        name="rigorous_legal_investigator_v1",
        tier="tier3",
        role=(
            "You are a litigator with over 20 years of experience reviewing a colleague's "
            "draft filing. Every citation must hold up in court."
        ),
        focus=(
            "Authority and structure: court, reporter, volume, page and year together",
            "Existence and doctrine: does an authority like this plausibly exist?",
            "Temporal fit: any impossibility in dates?",
            "Use in the brief: does the citation support the point the way real authority does?",
        ),
    ),
    AgentPersona(
        name="holistic_legal_analyst_v1",
        tier="tier3",
        role=(
            "You are a senior legal researcher and law librarian. You check citation "
            "correctness and research discipline."
        ),
        focus=(
            "Citation format and source conventions",
            "Doctrinal fit between the proposition and the authority",
            "Consistency of all metadata with how such authorities are published",
        ),
    ),
    AgentPersona(
        name="pattern_recognition_expert_v1",
        tier="tier3",
        role=(
            "You are an appellate clerk who has seen thousands of briefs and recognizes "
            "the difference between real and invented authority."
        ),
        focus=(
            "Objective defects that an invented citation tends to carry",
            "Whether any concern is concrete or merely pattern-based",
            "How an appellate judge would react on checking this citation",
        ),
    ),
)
