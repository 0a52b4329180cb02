"""
Text Pattern Predicates
=======================

Fuzzy text rules used across the pipeline, each kept as a named
function so it can be tested on its own:
- Sentinel / missing-provision answers
- Structural (section, article) references
- Grade extraction from jurisdiction metadata
- State-code deferral
- Non-text input detection (HTML, binary)
- Retrieval query expansion and gap guidance by question type

Version: 0.1.0
"""

import re
from datetime import timedelta
from typing import Any


SENTINEL_ANSWER = "Not specified in the statute."

STATE_CODE_ANSWER = (
    "No local ordinance; state code applies. This jurisdiction relies on the "
    "state code for these requirements rather than a local statute."
)

_MISSING_PHRASES = (
    "does not specify",
    "not mentioned",
    "no information",
    "not addressed",
    "not covered",
)

_SECTION_REFERENCE = re.compile(r"(?:§|Section)\s*(\d+(?:[.-]\d+)*[A-Z]*)", re.IGNORECASE)
_STRUCTURAL_MARKER = re.compile(r"§|\bsection\s+\d|\barticle\s+[IVXLCDM\d]+\b", re.IGNORECASE)

_LETTER_GRADE = re.compile(r"^([A-Z][+-]?)\s")
_COLOR_GRADE = re.compile(r"^([GRY][+-]?)", re.IGNORECASE)

_HTML_TAGS = (
    re.compile(r"<html[^>]*>", re.IGNORECASE),
    re.compile(r"<head[^>]*>", re.IGNORECASE),
    re.compile(r"<body[^>]*>", re.IGNORECASE),
    re.compile(r"<div[^>]*>", re.IGNORECASE),
    re.compile(r"<p[^>]*>", re.IGNORECASE),
    re.compile(r"<script[^>]*>", re.IGNORECASE),
    re.compile(r"<style[^>]*>", re.IGNORECASE),
    re.compile(r"<meta[^>]*>", re.IGNORECASE),
    re.compile(r"<title[^>]*>", re.IGNORECASE),
    re.compile(r"<link[^>]*>", re.IGNORECASE),
)
_BINARY_CHARS = re.compile("[\x00-\x08\x0e-\x1f\x7f-\x9f\u2000-\u200f\ufeff]")

_DURATION = re.compile(r"^(\d+)\s*([mhd])$", re.IGNORECASE)


# =============================================================================
# Answers
# =============================================================================


def is_sentinel_answer(answer: str) -> bool:
    """True for the fixed "not specified" answer."""
    return answer.strip().lower() == SENTINEL_ANSWER.lower()


def indicates_missing_provision(answer: str) -> bool:
    """True when the answer says the document does not cover the topic."""
    lower = answer.lower()
    return is_sentinel_answer(answer) or any(phrase in lower for phrase in _MISSING_PHRASES)


def cites_structural_reference(answer: str) -> bool:
    """True when the answer points at a section, clause or article."""
    return bool(_STRUCTURAL_MARKER.search(answer))


def extract_section_references(text: str, limit: int = 3) -> list[str]:
    """
    Section numbers cited in ``text``, in order of first appearance.

    Args:
        text: Answer or context text
        limit: Maximum number of distinct references

    Returns:
        Distinct section numbers such as ``["5.2", "12-4A"]``
    """
    found: list[str] = []
    for match in _SECTION_REFERENCE.finditer(text):
        ref = match.group(1)
        if ref not in found:
            found.append(ref)
        if len(found) >= limit:
            break
    return found


# =============================================================================
# Jurisdiction Metadata
# =============================================================================


def extract_grade(metadata: dict[str, Any], color_grades: bool = False) -> str | None:
    """
    Reviewer grade recorded in jurisdiction metadata.

    ``originalCellValue`` holds the spreadsheet cell the jurisdiction was
    imported from, e.g. ``"B+ Strong ordinance"`` or ``"G- partial"``.
    Letter grades need a following space; colour grades (G/R/Y) do not.
    Falls back to an explicit ``grade`` field.
    """
    cell = metadata.get("originalCellValue")
    if isinstance(cell, str) and cell:
        if color_grades:
            match = _COLOR_GRADE.match(cell)
            if match:
                return match.group(1).upper()
        else:
            match = _LETTER_GRADE.match(cell)
            if match:
                return match.group(1)

    grade = metadata.get("grade")
    if isinstance(grade, str) and grade.strip():
        return grade.strip()
    return None


def uses_state_code(metadata: dict[str, Any], markers: list[str]) -> bool:
    """True when the jurisdiction's source URL points at a state code."""
    source_url = metadata.get("sourceUrl")
    if not isinstance(source_url, str):
        return False
    return any(marker in source_url for marker in markers)


# =============================================================================
# Input Validation
# =============================================================================


def is_html_content(text: str) -> bool:
    """True when ``text`` is an HTML page rather than extracted text."""
    stripped = text.strip()
    if stripped.startswith(("<!DOCTYPE", "<html", "<HTML")):
        return True
    matches = sum(1 for pattern in _HTML_TAGS if pattern.search(text))
    return matches > 3


def has_binary_content(text: str, sample_chars: int = 1000) -> bool:
    """True when the head of ``text`` contains control or zero-width characters."""
    return bool(_BINARY_CHARS.search(text[:sample_chars]))


# =============================================================================
# Prompt Helpers
# =============================================================================

# domain -> [(trigger words, extra search terms)]
QUERY_EXPANSIONS: dict[str, list[tuple[tuple[str, ...], str]]] = {
    "property-maintenance": [
        (
            ("yard", "landscape"),
            "curtilage vegetation grasses brush briars 10 inches 15 feet perimeter "
            "structure uncultivated plants flowers gardens pollinator",
        ),
        (("penalty", "fine"), "$200 per day violation continues penalty fine"),
        (("timeline", "resolving"), "30 days 10 days certified mail notice violation hearing"),
    ],
    "trees": [
        (("permit", "removal"), "tree removal permit application DBH diameter inches"),
    ],
}


def expand_query(question: str, domain: str) -> str:
    """Append domain search terms to a question before embedding it."""
    lower = question.lower()
    expanded = question
    for triggers, terms in QUERY_EXPANSIONS.get(domain, []):
        if any(trigger in lower for trigger in triggers):
            expanded += " " + terms
    return expanded


_GAP_GUIDANCE: list[tuple[tuple[str, ...], str]] = [
    (
        ("permit",),
        "For permit questions: Focus on application procedures, review criteria, "
        "appeal processes, timelines, and approval standards.",
    ),
    (
        ("penalt", "fine"),
        "For penalty questions: Focus on fine amounts, escalation for repeat offenses, "
        "enforcement mechanisms, and violation categories.",
    ),
    (
        ("fee",),
        "For fee questions: Focus on fee schedules, payment options, exemptions, "
        "and administrative cost coverage.",
    ),
    (
        ("replant", "replacement"),
        "For replacement questions: Focus on species requirements, survival monitoring, "
        "replacement ratios, and native plant preferences.",
    ),
    (
        ("notif", "neighbor"),
        "For notification questions: Focus on neighbor distance requirements, timing, "
        "notification methods, and affected party identification.",
    ),
    (
        ("canopy",),
        "For canopy questions: Focus on coverage targets, measurement methods, "
        "maintenance plans, and long-term preservation strategies.",
    ),
    (
        ("maintain", "responsibilit"),
        "For maintenance questions: Focus on property owner duties, inspection schedules, "
        "care standards, and hazard management responsibilities.",
    ),
    (
        ("data", "report"),
        "For reporting questions: Focus on data collection requirements, public reporting, "
        "transparency measures, and tracking mechanisms.",
    ),
]

_DEFAULT_GAP_GUIDANCE = (
    "Focus on what specific regulatory framework, standards, or requirements "
    "the jurisdiction should establish for this topic."
)


def question_type_guidance(question: str) -> str:
    """Gap-analysis guidance matched to the kind of question asked."""
    lower = question.lower()
    for triggers, guidance in _GAP_GUIDANCE:
        if any(trigger in lower for trigger in triggers):
            return guidance
    return _DEFAULT_GAP_GUIDANCE


# =============================================================================
# CLI Values
# =============================================================================


def parse_duration(value: str) -> timedelta:
    """
    Parse a compact duration such as ``15m``, ``2h`` or ``1d``.

    Raises:
        ValueError: If the value is not a number followed by m, h or d.
    """
    match = _DURATION.match(value.strip())
    if not match:
        raise ValueError(f"Invalid duration {value!r}; use e.g. 15m, 2h or 1d")
    amount, unit = int(match.group(1)), match.group(2).lower()
    if unit == "m":
        return timedelta(minutes=amount)
    if unit == "h":
        return timedelta(hours=amount)
    return timedelta(days=amount)
