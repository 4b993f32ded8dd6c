"""Heading candidate detection and keyword classification.

Detection is over-inclusive. False positives are dropped by the classifier or
never matched by the resolver.
"""

import logging
import re
from dataclasses import dataclass

from sonoscribe.composer.sections import (
    SECTION_KEYS,
    SECTION_KEYWORDS,
    SectionKey,
    normalize_heading,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeadingCandidate:
    line_index: int
    raw_text: str


MAX_HEADING_CHARS = 90
MAX_HEADING_WORDS = 12
MAX_HEADING_PUNCTUATION = 2
MAX_SENTENCE_HEADING_WORDS = 7
MIN_CLASSIFIER_SCORE = 2

# Patient header rows ("Name: ...", "Date: ...") are data, not sections
_HEADER_LINE_SKIP = re.compile(
    r"^(name|patient\s*name|patient|gender|sex|age|id|mrn|uhid|accession|date|"
    r"exam\s*date|clinical\s*history|history)\b",
    re.IGNORECASE,
)
_BULLET_OR_NUMBER_PREFIX = re.compile(r"^(?:[-*•]\s+|\d+[.)]\s+)")
_PUNCTUATION_ONLY = re.compile(r"^[\W_]+$")
_LONG_CLAUSE = re.compile(r"[.;][^\n]*[.;]")
_PUNCTUATION = re.compile(r"[:.,;!?]")
_SENTENCE_END = re.compile(r"[.?!]$")

_PERITONEUM_TERM = re.compile(r"peritone", re.IGNORECASE)
_NODE_TERM = re.compile(r"lymph|node", re.IGNORECASE)

SCORE_EXACT = 6
SCORE_EDGE = 4
SCORE_SUBSTRING = 2
SCORE_PERITONEUM_NODES_BONUS = 6


def _split_lines(text: str) -> list[str]:
    return re.split(r"\r?\n", text or "")


def _count_words(text: str) -> int:
    return len(text.split())


def is_heading_candidate(line: str) -> bool:
    """Structural heading test for a single line (already known non-blank)."""
    trimmed = line.strip()
    if not trimmed:
        return False
    words = _count_words(trimmed)
    if len(trimmed) > MAX_HEADING_CHARS or words > MAX_HEADING_WORDS:
        return False
    if _HEADER_LINE_SKIP.match(trimmed):
        return False
    if _BULLET_OR_NUMBER_PREFIX.match(trimmed):
        return False
    if _PUNCTUATION_ONLY.match(trimmed):
        return False
    if _LONG_CLAUSE.search(trimmed):
        return False
    if len(_PUNCTUATION.findall(trimmed)) > MAX_HEADING_PUNCTUATION:
        return False
    if _SENTENCE_END.search(trimmed) and words > MAX_SENTENCE_HEADING_WORDS:
        return False
    return True


def detect_heading_candidates(template_text: str) -> list[HeadingCandidate]:
    """Flag every line that is structurally plausible as a section heading."""
    candidates = []
    for index, line in enumerate(_split_lines(template_text)):
        if is_heading_candidate(line):
            candidates.append(HeadingCandidate(line_index=index, raw_text=line.strip()))
    return candidates


def score_heading(normalized: str, key: SectionKey) -> int:
    score = 0
    for keyword in SECTION_KEYWORDS[key]:
        keyword_norm = normalize_heading(keyword)
        if not keyword_norm:
            continue
        if normalized == keyword_norm:
            score += SCORE_EXACT
        elif normalized.startswith(keyword_norm) or normalized.endswith(keyword_norm):
            score += SCORE_EDGE
        elif keyword_norm in normalized:
            score += SCORE_SUBSTRING

    if (
        key is SectionKey.PERITONEUM_NODES
        and _PERITONEUM_TERM.search(normalized)
        and _NODE_TERM.search(normalized)
    ):
        score += SCORE_PERITONEUM_NODES_BONUS
    return score


def classify_heading_candidate(line: str) -> SectionKey | None:
    """Return the best-scoring section key, or None below the threshold.

    Ties keep the first key in taxonomy order (strictly-greater comparison).
    """
    normalized = normalize_heading(line)
    if not normalized:
        return None

    best_key = None
    best_score = 0
    for key in SECTION_KEYS:
        score = score_heading(normalized, key)
        if score > best_score:
            best_key, best_score = key, score

    if best_key is None or best_score < MIN_CLASSIFIER_SCORE:
        return None
    return best_key


def auto_map_heading_candidates(candidates: list[HeadingCandidate]) -> dict[SectionKey, str]:
    """Propose a heading mapping from the classifier alone.

    Used to pre-fill a user's mapping for a freshly pasted template.
    """
    mapping = {}
    used = set()
    for key in SECTION_KEYS:
        for candidate in candidates:
            if candidate.line_index in used:
                continue
            if classify_heading_candidate(candidate.raw_text) is not key:
                continue
            mapping[key] = candidate.raw_text
            used.add(candidate.line_index)
            break
    logger.debug("Auto-mapped %d of %d heading candidates", len(mapping), len(candidates))
    return mapping
