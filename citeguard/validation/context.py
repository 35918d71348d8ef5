"""Document context extraction for panel prompts."""

from __future__ import annotations

import re

import structlog

from ..models.citation import CitationDocument

logger = structlog.get_logger(__name__)

_ANY_MARKER = re.compile(r"\[/?CITATION:[^\]]*\]")
_MARKER_FRAGMENT = re.compile(r"\[/?CITATION:[^\[]*")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_WHITESPACE = re.compile(r"\s+")


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def strip_markers(text: str) -> str:
    """Remove citation markers (well-formed or broken) and normalize whitespace."""
    text = _ANY_MARKER.sub("", text)
    text = _MARKER_FRAGMENT.sub("", text)
    return _normalize(text)


def _resolve_marked_region(text: str, citation_id: str, citation_text: str) -> str:
    opening = f"[CITATION:{citation_id}]"
    closing = f"[/CITATION:{citation_id}]"

    start = text.find(opening)
    end = text.rfind(closing)
    if start == -1 or end == -1 or end < start:
        return text

    end += len(closing)
    marked = strip_markers(text[start:end])

    # Split or nested markers leave partial text behind; prefer the citation text
    if citation_text and (
        marked.lower() != _normalize(citation_text).lower()
        or len(citation_text) > len(marked) * 1.5
    ):
        replacement = citation_text
    else:
        replacement = marked

    return text[:start] + replacement + text[end:]


def extract_document_context(
    citation_id: str,
    document: CitationDocument,
    include_preceding: bool = True,
) -> str:
    """Build the context passage shown to panel agents for one citation.

    Finds the content block holding ``[CITATION:<id>]``, replaces the marked
    region with the citation text, strips all remaining markers and, if
    requested, prepends the last two sentences of the previous block.

    Args:
        citation_id: Citation id (e.g. ``cit_001``)
        document: Document snapshot
        include_preceding: Whether to prepend sentences from the previous block

    Returns:
        Context string, or ``""`` when the citation is not marked in the content

    Example:
        >>> extract_document_context("cit_001", document)
        'The court held otherwise. See Smith v. Jones, 123 F.3d 456 (9th Cir. 1999).'
    """
    citation = document.find_citation(citation_id)
    citation_text = citation.citation_text if citation else ""

    marker = f"[CITATION:{citation_id}]"
    index = next(
        (i for i, block in enumerate(document.content) if marker in block.text), None
    )
    if index is None:
        logger.warning("citation_context_not_found", citation_id=citation_id)
        return ""

    context = _resolve_marked_region(document.content[index].text, citation_id, citation_text)
    context = strip_markers(context)

    if include_preceding and index > 0:
        previous = strip_markers(document.content[index - 1].text)
        sentences = [s.strip() for s in _SENTENCE_SPLIT.split(previous) if s.strip()]
        if sentences:
            context = f"{'. '.join(sentences[-2:])}. {context}"

    return context
