"""Report composition: parsed model payload -> final report text + review flags.

This is the single entry point the CLI and web layer use to turn extracted
findings into a report. It chooses between the canonical builder and the
custom template renderer, applies an approved template profile on top, and
collects every degradation as a human-readable flag for the reviewer.
"""

import logging

from pydantic import BaseModel, Field

from sonoscribe.composer.canonical import FIELD_KEYS, build_usg_report
from sonoscribe.composer.payload import (
    append_other_observations_section,
    build_field_overrides,
    extract_other_observations,
    extract_patient,
    extraction_confidence,
    has_all_field_keys,
    is_relevant_observation,
    normalize_gender,
)
from sonoscribe.composer.profile import (
    TemplateProfile,
    extract_profile_extra_fields,
    extract_unmapped_findings,
    profile_field_ids,
    render_profile_sections,
    sanitize_template_profile,
    suggest_profile_field_ids_from_findings,
)
from sonoscribe.composer.renderer import render_custom_template
from sonoscribe.composer.sections import Gender, is_high_risk

logger = logging.getLogger(__name__)

TEMPLATE_MALE = "USG_ABDOMEN_MALE"
TEMPLATE_FEMALE = "USG_ABDOMEN_FEMALE"
TEMPLATE_CUSTOM = "USG_ABDOMEN_CUSTOM"
TEMPLATE_IDS = (TEMPLATE_MALE, TEMPLATE_FEMALE, TEMPLATE_CUSTOM)

LOW_CONFIDENCE_THRESHOLD = 0.5
UNCLEAR_OBSERVATIONS = "[Unclear - needs review]"

FLAG_HEADINGS_NOT_DETECTED = "Custom template headings not detected; returned canonical USG report."
FLAG_NO_OVERRIDES = (
    "Custom template headings detected but no dictated section overrides found; template body preserved."
)
FLAG_HEURISTIC_MAPPING = "Custom template mapping partially resolved using heading heuristics."
FLAG_PROFILE_NOT_DETECTED = "Approved template profile sections not detected in custom template."
FLAG_PROFILE_NOT_FILLED = "Template profile sections detected but no profile field overrides were filled."
FLAG_MISSING_FIELDS = "Model output missing some canonical fields; missing fields treated as empty."
FLAG_MISSING_PROFILE_FIELDS = (
    "Model output missing some profile extra_fields keys; missing values treated as empty."
)
FLAG_FILTERED_OBSERVATIONS = "Filtered non-USG-abdomen or noisy lines from OTHER OBSERVATIONS."
FLAG_FILTERED_UNMAPPED = "Filtered non-USG-abdomen or noisy lines from unmapped findings."
FLAG_OTHER_OBSERVATIONS = "Additional non-canonical observations appended under OTHER OBSERVATIONS."
FLAG_LOW_CONFIDENCE = "Low extraction confidence; review report carefully."
FLAG_GENDER_UNCLEAR = "Patient gender unclear; using template gender"
FLAG_HIGH_RISK = "High-risk organ finding reported; review before sign-off."
FLAG_NO_FINDINGS = "No clear findings detected in audio"


class ProfileFeedback(BaseModel):
    unmapped_findings: list[str] = Field(default_factory=list)
    suggested_new_fields: list[str] = Field(default_factory=list)
    extraction_confidence: float | None = None


class ReportComposition(BaseModel):
    template_id: str
    gender: Gender
    observations: str
    flags: list[str] = Field(default_factory=list)
    sections_detected: int = 0
    sections_replaced: int = 0
    forced_canonical_fallback: bool = False
    fallback_reason: str | None = None
    profile_feedback: ProfileFeedback | None = None


def gender_label(gender: Gender) -> str:
    return "Female" if gender is Gender.FEMALE else "Male"


def template_gender_for(template_id: str, custom_template_gender: str | None = None) -> Gender:
    if template_id == TEMPLATE_FEMALE:
        return Gender.FEMALE
    if template_id == TEMPLATE_CUSTOM:
        return Gender.coerce(custom_template_gender)
    return Gender.MALE


def _profile_values(overrides: dict[str, str], extra_values: dict[str, str]) -> dict[str, str]:
    values = {key: overrides[key].strip() for key in FIELD_KEYS if overrides.get(key, "").strip()}
    for field_id, value in extra_values.items():
        if value.strip():
            values[field_id] = value.strip()
    return values


def _has_profile_keys(parsed: dict, field_ids: list[str]) -> bool:
    if not field_ids:
        return True
    source = parsed.get("extra_fields")
    if not isinstance(source, dict):
        source = parsed.get("extraFields")
    return isinstance(source, dict) and all(field_id in source for field_id in field_ids)


def _dedupe(flags: list[str]) -> list[str]:
    return list(dict.fromkeys(flags))


def compose_report(
    parsed: dict,
    template_id: str = TEMPLATE_MALE,
    custom_template_text: str = "",
    mapping: dict | str | None = None,
    profile: TemplateProfile | dict | str | None = None,
    template_gender: str | None = None,
    organ_states: dict | None = None,
) -> ReportComposition:
    parsed = parsed if isinstance(parsed, dict) else {}
    if template_id not in TEMPLATE_IDS:
        template_id = TEMPLATE_MALE
    is_custom = template_id == TEMPLATE_CUSTOM

    profile = sanitize_template_profile(profile) if profile is not None else None
    approved_profile = profile if profile is not None and profile.approved else None
    field_ids = profile_field_ids(approved_profile)

    flags = [str(flag) for flag in parsed.get("flags", [])] if isinstance(parsed.get("flags"), list) else []

    overrides = build_field_overrides(parsed)
    observations, dropped_observations = extract_other_observations(parsed)
    unmapped_raw = extract_unmapped_findings(parsed)
    unmapped = [finding for finding in unmapped_raw if is_relevant_observation(finding)]
    extra_values = extract_profile_extra_fields(parsed, approved_profile)

    patient = extract_patient(parsed)
    base_gender = template_gender_for(template_id, template_gender)
    gender = base_gender
    spoken_gender = normalize_gender(patient["gender"])
    if spoken_gender:
        gender = Gender(spoken_gender)
        if gender is not base_gender:
            flags.append(
                f"Gender mismatch: template={gender_label(base_gender)}, audio={gender_label(gender)}"
            )
    elif patient["gender"].strip():
        flags.append(FLAG_GENDER_UNCLEAR)
    patient["gender"] = gender_label(gender)

    if not has_all_field_keys(parsed.get("fields")):
        flags.append(FLAG_MISSING_FIELDS)
    if approved_profile is not None and not _has_profile_keys(parsed, field_ids):
        flags.append(FLAG_MISSING_PROFILE_FIELDS)
    if dropped_observations:
        flags.append(FLAG_FILTERED_OBSERVATIONS)
    if len(unmapped) < len(unmapped_raw):
        flags.append(FLAG_FILTERED_UNMAPPED)
    if isinstance(organ_states, dict) and any(is_high_risk(state) for state in organ_states.values()):
        flags.append(FLAG_HIGH_RISK)

    result = ReportComposition(template_id=template_id, gender=gender, observations="")

    if is_custom:
        rendered = render_custom_template(
            custom_template_text,
            mapping=mapping,
            overrides=overrides,
            gender=gender,
            patient=patient,
            organ_states=organ_states,
        )
        text = rendered.text
        result.sections_detected = rendered.sections_detected
        result.sections_replaced = rendered.sections_replaced
        result.forced_canonical_fallback = rendered.forced_canonical_fallback
        result.fallback_reason = rendered.fallback_reason

        if rendered.forced_canonical_fallback:
            flags.append(rendered.fallback_reason)
        elif rendered.sections_detected == 0:
            flags.append(FLAG_HEADINGS_NOT_DETECTED)
        elif rendered.sections_replaced == 0:
            flags.append(FLAG_NO_OVERRIDES)
        if rendered.used_fallback_detection:
            flags.append(FLAG_HEURISTIC_MAPPING)

        if approved_profile is not None and not rendered.forced_canonical_fallback:
            profiled = render_profile_sections(text, approved_profile, _profile_values(overrides, extra_values))
            text = profiled.text
            if profiled.sections_detected == 0:
                flags.append(FLAG_PROFILE_NOT_DETECTED)
            elif profiled.sections_replaced == 0:
                flags.append(FLAG_PROFILE_NOT_FILLED)
    else:
        text = build_usg_report(gender=gender, patient=patient, overrides=overrides)

    if observations:
        text = append_other_observations_section(text, observations)
        flags.append(FLAG_OTHER_OBSERVATIONS)

    confidence = extraction_confidence(parsed)
    if confidence is not None and confidence < LOW_CONFIDENCE_THRESHOLD:
        flags.append(FLAG_LOW_CONFIDENCE)

    if is_custom and profile is not None:
        result.profile_feedback = ProfileFeedback(
            unmapped_findings=unmapped,
            suggested_new_fields=suggest_profile_field_ids_from_findings(unmapped),
            extraction_confidence=confidence,
        )

    if not text.strip():
        text = UNCLEAR_OBSERVATIONS
        flags.insert(0, FLAG_NO_FINDINGS)

    result.observations = text
    result.flags = _dedupe(flags)
    logger.info(
        "Composed %s report (%s): %d flags", template_id, gender.value, len(result.flags),
    )
    return result
