"""Resolve canonical sections to line indexes in a free-form template.

Two passes, both in taxonomy order:

1. Explicit: the user's heading mapping is authoritative; the first unused
   line whose normalised text equals the mapped heading is taken.
2. Fallback: keys still unassigned take the first unused heading candidate
   (document order) that the classifier resolves to them.

A line index is consumed by at most one key, so the assignment is injective.
"""

import json
import logging
from dataclasses import dataclass

from sonoscribe.composer.headings import HeadingCandidate, classify_heading_candidate
from sonoscribe.composer.sections import SECTION_KEYS, SectionKey, normalize_heading

logger = logging.getLogger(__name__)

MAX_MAPPING_HEADING_CHARS = 200


@dataclass(frozen=True)
class SectionAssignment:
    key: SectionKey
    line_index: int
    heading_line: str


@dataclass(frozen=True)
class ResolvedSections:
    sections: list[SectionAssignment]
    used_fallback_detection: bool

    @property
    def keys(self) -> set[SectionKey]:
        return {s.key for s in self.sections}


def _mapped_heading(mapping: dict, key: SectionKey) -> str:
    value = mapping.get(key) or mapping.get(key.value)
    return value if isinstance(value, str) else ""


def resolve_mapped_sections(
    lines: list[str],
    mapping: dict | None,
    candidates: list[HeadingCandidate],
) -> ResolvedSections:
    mapping = mapping or {}
    used: set[int] = set()
    assigned: dict[SectionKey, SectionAssignment] = {}

    line_indexes: dict[str, list[int]] = {}
    for index, line in enumerate(lines):
        normalized = normalize_heading(line)
        if normalized:
            line_indexes.setdefault(normalized, []).append(index)

    def assign(key: SectionKey, index: int, heading_line: str):
        used.add(index)
        assigned[key] = SectionAssignment(key=key, line_index=index, heading_line=heading_line)

    for key in SECTION_KEYS:
        target = normalize_heading(_mapped_heading(mapping, key))
        if not target:
            continue
        for index in line_indexes.get(target, ()):
            if index in used:
                continue
            assign(key, index, lines[index])
            break

    used_fallback = False
    for key in SECTION_KEYS:
        if key in assigned:
            continue
        for candidate in candidates:
            if candidate.line_index in used:
                continue
            if classify_heading_candidate(candidate.raw_text) is not key:
                continue
            heading = lines[candidate.line_index] if candidate.line_index < len(lines) else candidate.raw_text
            assign(key, candidate.line_index, heading or candidate.raw_text)
            used_fallback = True
            break

    sections = sorted(assigned.values(), key=lambda s: s.line_index)
    logger.debug(
        "Resolved %d sections (fallback detection: %s)",
        len(sections), used_fallback,
    )
    return ResolvedSections(sections=sections, used_fallback_detection=used_fallback)


def sanitize_custom_template_mapping(raw, max_heading_chars: int = MAX_MAPPING_HEADING_CHARS) -> dict[SectionKey, str]:
    """Build a heading mapping from untrusted input; never raises.

    Accepts a dict or a JSON string. Keeps only taxonomy keys whose values are
    non-empty strings of at most ``max_heading_chars`` characters after
    trimming.
    """
    parsed = raw
    if isinstance(parsed, (str, bytes)):
        try:
            parsed = json.loads(parsed)
        except ValueError:
            return {}
    if not isinstance(parsed, dict):
        return {}

    result = {}
    for key in SECTION_KEYS:
        value = parsed.get(key) or parsed.get(key.value)
        if not isinstance(value, str):
            continue
        trimmed = value.strip()
        if not trimmed or len(trimmed) > max_heading_chars:
            logger.debug("Dropping mapping entry %s", key.value)
            continue
        result[key] = trimmed
    return result


def mapping_to_json(mapping: dict[SectionKey, str]) -> str:
    return json.dumps({SectionKey(k).value: v for k, v in mapping.items()})


def hash_template_text(template_text: str) -> str:
    """32-bit FNV-1a over UTF-16 code units, rendered as ``t<hex>``."""
    value = 0x811C9DC5
    data = (template_text or "").encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        value ^= data[i] | (data[i + 1] << 8)
        value = (value * 0x01000193) & 0xFFFFFFFF
    return f"t{value:x}"
