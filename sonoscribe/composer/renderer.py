"""Deterministic rendering of dictated findings into a user's own template.

Pipeline: build canonical report -> extract canonical sections -> fill the
patient header -> detect heading candidates -> resolve sections -> splice.

Safety rules:

- A high-risk organ whose canonical text has nowhere to go in the template
  aborts the partial edit; the whole canonical report is returned instead.
- A template with no resolvable section at all also yields the canonical
  report, since partial edits need at least one anchor.
- A cleared section keeps a single blank line before the next heading; a
  cleared final section keeps only the blank lines it already ended with.
- Splicing runs in reverse document order so earlier indexes stay valid.
- Every line keeps its own terminator, so mixed line endings survive.
"""

import logging
from dataclasses import dataclass

from sonoscribe.composer.canonical import build_usg_report
from sonoscribe.composer.extractor import extract_canonical_sections
from sonoscribe.composer.header import apply_deterministic_header_updates
from sonoscribe.composer.headings import detect_heading_candidates
from sonoscribe.composer.layout import (
    apply_existing_line_style,
    join_lines,
    splice,
    split_lines_with_endings,
    trailing_blank_lines,
)
from sonoscribe.composer.resolver import resolve_mapped_sections, sanitize_custom_template_mapping
from sonoscribe.composer.sections import (
    Gender,
    OrganState,
    SectionKey,
    has_section_overrides,
    is_section_applicable,
    is_section_high_risk,
    normalize_organ_states,
    organ_sections,
)

logger = logging.getLogger(__name__)

UNRESOLVED_ORGAN_REASON = (
    "Custom template fallback to canonical report due to unresolved organ-state section mapping."
)


@dataclass
class CustomRenderResult:
    text: str
    sections_detected: int
    sections_replaced: int
    used_fallback_detection: bool
    forced_canonical_fallback: bool = False
    fallback_reason: str | None = None


def find_unanchored_high_risk_organ(
    organ_states: dict[str, OrganState],
    canonical_sections: dict[SectionKey, str],
    resolved_keys: set[SectionKey],
    gender: Gender,
) -> str | None:
    """Return the first high-risk organ with canonical text but no resolved section."""
    for organ, state in organ_states.items():
        if state is not OrganState.HIGH_RISK:
            continue
        with_text = [
            key for key in organ_sections(organ, gender)
            if canonical_sections.get(key, "").strip()
        ]
        if with_text and not any(key in resolved_keys for key in with_text):
            return organ
    return None


def render_custom_template(
    template_text: str,
    mapping: dict | str | None = None,
    overrides: dict | None = None,
    gender: Gender | str | None = None,
    patient: dict | None = None,
    suppressed_fields: list[str] | None = None,
    organ_states: dict | None = None,
) -> CustomRenderResult:
    gender = Gender.coerce(gender)
    overrides = overrides or {}
    patient = patient or {}
    mapping = sanitize_custom_template_mapping(mapping)
    states = normalize_organ_states(organ_states)

    canonical_report = build_usg_report(
        gender=gender,
        patient=patient,
        overrides=overrides,
        suppressed_fields=suppressed_fields,
    )
    canonical_sections = extract_canonical_sections(canonical_report, gender)

    filled = apply_deterministic_header_updates(
        template_text,
        patient_name=patient.get("name") or "",
        patient_gender_label=patient.get("gender") or "",
        exam_date=patient.get("date") or "",
    )
    lines, endings = split_lines_with_endings(filled)
    candidates = detect_heading_candidates(filled)
    resolved = resolve_mapped_sections(lines, mapping, candidates)
    sections = resolved.sections

    organ = find_unanchored_high_risk_organ(states, canonical_sections, resolved.keys, gender)
    if organ is not None:
        logger.info("High-risk %s finding has no template section; using canonical report", organ)
        return CustomRenderResult(
            text=canonical_report,
            sections_detected=len(sections),
            sections_replaced=0,
            used_fallback_detection=resolved.used_fallback_detection,
            forced_canonical_fallback=True,
            fallback_reason=UNRESOLVED_ORGAN_REASON,
        )

    if not sections:
        logger.info("No sections resolved in custom template; using canonical report")
        return CustomRenderResult(
            text=canonical_report,
            sections_detected=0,
            sections_replaced=0,
            used_fallback_detection=resolved.used_fallback_detection,
        )

    output = list(lines)
    replaced = 0
    for i in range(len(sections) - 1, -1, -1):
        section = sections[i]
        start = section.line_index + 1
        end = sections[i + 1].line_index if i + 1 < len(sections) else len(output)

        replacement = canonical_sections.get(section.key, "")
        has_text = bool(replacement.strip())
        has_overrides = has_section_overrides(section.key, overrides)
        applicable = is_section_applicable(section.key, gender)
        high_risk = is_section_high_risk(section.key, states, gender)

        force_clear = not applicable or ((has_overrides or high_risk) and not has_text)
        should_replace = force_clear or ((has_overrides or high_risk) and has_text)
        if not should_replace:
            continue

        body = output[start:end]
        if force_clear:
            separator = [""] if end < len(output) else trailing_blank_lines(body)
            splice(output, endings, start, end, separator)
        else:
            new_body = apply_existing_line_style(body, replacement)
            if not new_body:
                continue
            splice(output, endings, start, end - len(trailing_blank_lines(body)), new_body)
        replaced += 1
        logger.debug("Replaced %s (%s)", section.key.value, "cleared" if force_clear else "filled")

    return CustomRenderResult(
        text=join_lines(output, endings),
        sections_detected=len(sections),
        sections_replaced=replaced,
        used_fallback_detection=resolved.used_fallback_detection,
    )
