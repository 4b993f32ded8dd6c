"""Site-defined template profiles.

A profile is a user-authored schema (sections + fields) that replaces the
fixed taxonomy for sites with their own report layout. Profiles only ever
come out of ``sanitize_template_profile``, which never raises: bad input
degrades to a smaller valid profile, or to ``None`` when nothing usable is
left to parse.

Rendering matches sections purely by normalised heading equality. A section
is filled with ``label: value`` lines when any of its dependent fields has a
value, otherwise it is left untouched.
"""

import datetime
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, Field

from sonoscribe.composer.headings import detect_heading_candidates
from sonoscribe.composer.layout import (
    apply_existing_line_style,
    join_lines,
    splice,
    split_lines_with_endings,
    trailing_blank_lines,
)
from sonoscribe.composer.payload import number_text
from sonoscribe.composer.sections import normalize_heading, normalize_whitespace

logger = logging.getLogger(__name__)

TEMPLATE_PROFILE_VERSION = 1
MAX_SECTIONS = 48
MAX_FIELDS = 160
MAX_DEPENDS_ON = 64
MAX_SEED_SECTIONS = 24
MAX_SUGGESTIONS = 6

FieldType = Literal["text", "number", "boolean", "measurement"]
_FIELD_TYPES = ("text", "number", "boolean", "measurement")

_SUGGESTION_STOPWORDS = {"the", "is", "are", "with", "and", "of", "in"}


class ProfileSection(BaseModel):
    id: str
    heading: str
    depends_on: list[str] = Field(default_factory=list)
    normal_hint: str = ""


class ProfileField(BaseModel):
    id: str
    label: str
    type: FieldType = "text"
    section_id: str
    normal_hint: str = ""


class TemplateProfile(BaseModel):
    version: int = TEMPLATE_PROFILE_VERSION
    template_hash: str = ""
    created_at: str
    updated_at: str
    approved: bool = False
    sections: list[ProfileSection] = Field(default_factory=list)
    fields: list[ProfileField] = Field(default_factory=list)


@dataclass
class ProfileRenderResult:
    text: str
    sections_detected: int
    sections_replaced: int


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _text(value: Any) -> str:
    return normalize_whitespace(value) if isinstance(value, str) else ""


def to_snake_id(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", (value or "").lower()).strip("_")
    if not slug:
        return "field"
    return slug if re.match(r"^[a-z_]", slug) else f"f_{slug}"


def _sanitize_depends_on(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    values = []
    for item in raw[:MAX_DEPENDS_ON]:
        field_id = to_snake_id(_text(item))
        if field_id not in values:
            values.append(field_id)
    return values


def _sanitize_field_type(raw: Any) -> str:
    value = _text(raw).lower()
    return value if value in _FIELD_TYPES else "text"


def sanitize_template_profile(raw: Any, template_hash: str | None = None) -> TemplateProfile | None:
    parsed = raw
    if isinstance(parsed, (str, bytes)):
        try:
            parsed = json.loads(parsed)
        except ValueError:
            return None
    if isinstance(parsed, TemplateProfile):
        parsed = parsed.model_dump()
    if not isinstance(parsed, dict) or not parsed:
        return None

    sections_raw = parsed.get("sections") if isinstance(parsed.get("sections"), list) else []
    fields_raw = parsed.get("fields") if isinstance(parsed.get("fields"), list) else []

    sections: list[ProfileSection] = []
    section_ids: set[str] = set()
    for item in sections_raw[:MAX_SECTIONS]:
        if not isinstance(item, dict):
            continue
        heading = _text(item.get("heading"))
        if not heading:
            continue
        section_id = to_snake_id(_text(item.get("id")) or heading)
        if section_id in section_ids:
            base, suffix = section_id, len(sections) + 1
            while f"{base}_{suffix}" in section_ids:
                suffix += 1
            section_id = f"{base}_{suffix}"
        section_ids.add(section_id)
        sections.append(ProfileSection(
            id=section_id,
            heading=heading,
            depends_on=_sanitize_depends_on(item.get("depends_on")),
            normal_hint=_text(item.get("normal_hint")),
        ))

    fields: list[ProfileField] = []
    field_ids: set[str] = set()
    default_section = sections[0].id if sections else "general"
    for item in fields_raw[:MAX_FIELDS]:
        if not isinstance(item, dict):
            continue
        label = _text(item.get("label")) or _text(item.get("id"))
        if not label:
            continue
        field_id = to_snake_id(_text(item.get("id")) or label)
        if field_id in field_ids:
            logger.debug("Dropping duplicate profile field %s", field_id)
            continue
        field_ids.add(field_id)
        section_source = _text(item.get("section_id"))
        section_id = to_snake_id(section_source) if section_source else ""
        fields.append(ProfileField(
            id=field_id,
            label=label,
            type=_sanitize_field_type(item.get("type")),
            section_id=section_id if section_id in section_ids else default_section,
            normal_hint=_text(item.get("normal_hint")),
        ))

    return TemplateProfile(
        template_hash=_text(template_hash) or _text(parsed.get("template_hash")),
        created_at=_text(parsed.get("created_at")) or _now_iso(),
        updated_at=_now_iso(),
        approved=bool(parsed.get("approved")),
        sections=sections,
        fields=fields,
    )


# ---------------------------------------------------------------------------
# Extraction helpers for AI payloads
# ---------------------------------------------------------------------------

def profile_field_ids(profile: TemplateProfile | None) -> list[str]:
    return [f.id for f in profile.fields] if profile else []


def build_profile_extra_fields_seed(profile: TemplateProfile | None) -> dict[str, str]:
    return {field_id: "" for field_id in profile_field_ids(profile)}


def _normalize_value(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return number_text(value)
    return ""


def extract_profile_extra_fields(parsed: dict, profile: TemplateProfile | None) -> dict[str, str]:
    seed = build_profile_extra_fields_seed(profile)
    if not seed:
        return seed
    source = parsed.get("extra_fields")
    if not isinstance(source, dict):
        source = parsed.get("extraFields")
    if not isinstance(source, dict):
        source = {}
    for field_id in seed:
        value = _normalize_value(source.get(field_id))
        if value:
            seed[field_id] = value
    return seed


def _dedupe_case_insensitive(values: list[str]) -> list[str]:
    seen = set()
    unique = []
    for value in values:
        key = value.lower()
        if key not in seen:
            seen.add(key)
            unique.append(value)
    return unique


def extract_unmapped_findings(parsed: dict) -> list[str]:
    findings: list[str] = []
    for key in ("unmapped_findings", "unmappedFindings", "other_observations", "otherObservations"):
        candidate = parsed.get(key)
        if isinstance(candidate, list):
            findings.extend(t for t in (_text(item) for item in candidate) if t)
            if findings:
                break
            continue
        if isinstance(candidate, str) and candidate.strip():
            findings.append(_text(candidate))
            break
    return _dedupe_case_insensitive(findings)


def suggest_profile_field_ids_from_findings(findings: list[str]) -> list[str]:
    suggestions = []
    for finding in findings:
        tokens = [
            t for t in re.sub(r"[^a-z0-9\s]+", " ", finding.lower()).split()
            if t not in _SUGGESTION_STOPWORDS
        ]
        if not tokens:
            continue
        proposal = to_snake_id("_".join(tokens[:4]))
        if proposal in suggestions:
            continue
        suggestions.append(proposal)
        if len(suggestions) >= MAX_SUGGESTIONS:
            break
    return suggestions


def build_fallback_profile_seed(template_text: str) -> dict:
    """Profile seed from heading candidates, for when no AI proposal is available."""
    headings = _dedupe_exact([c.raw_text for c in detect_heading_candidates(template_text) if c.raw_text])
    headings = headings[:MAX_SEED_SECTIONS]
    if headings:
        sections = [
            {"id": f"section_{i}", "heading": heading, "depends_on": [], "normal_hint": ""}
            for i, heading in enumerate(headings, 1)
        ]
    else:
        sections = [{"id": "section_1", "heading": "Observations", "depends_on": [], "normal_hint": ""}]
    return {"sections": sections, "fields": []}


def _dedupe_exact(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def render_profile_sections(
    template_text: str,
    profile: TemplateProfile | None,
    values: dict[str, Any] | None,
) -> ProfileRenderResult:
    values = values or {}
    if profile is None or not profile.sections:
        return ProfileRenderResult(text=template_text, sections_detected=0, sections_replaced=0)

    lines, endings = split_lines_with_endings(template_text)
    normalized_lines = [normalize_heading(line) for line in lines]
    used: set[int] = set()
    matched: list[tuple[int, ProfileSection]] = []

    for section in profile.sections:
        target = normalize_heading(section.heading)
        if not target:
            continue
        for index, candidate in enumerate(normalized_lines):
            if index in used or not candidate or candidate != target:
                continue
            used.add(index)
            matched.append((index, section))
            break

    if not matched:
        return ProfileRenderResult(text=template_text, sections_detected=0, sections_replaced=0)

    matched.sort(key=lambda entry: entry[0])
    labels = {f.id: f.label for f in profile.fields}
    output = list(lines)
    replaced = 0

    for i in range(len(matched) - 1, -1, -1):
        index, section = matched[i]
        start = index + 1
        end = matched[i + 1][0] if i + 1 < len(matched) else len(output)

        entries = [(fid, _text(_normalize_value(values.get(fid)))) for fid in section.depends_on]
        entries = [(fid, value) for fid, value in entries if value]
        if not entries:
            continue

        replacement = "\n".join(
            f"{labels[fid]}: {value}" if fid in labels else value
            for fid, value in entries
        )
        body = output[start:end]
        splice(
            output, endings, start, end - len(trailing_blank_lines(body)),
            apply_existing_line_style(body, replacement),
        )
        replaced += 1

    return ProfileRenderResult(
        text=join_lines(output, endings),
        sections_detected=len(matched),
        sections_replaced=replaced,
    )
