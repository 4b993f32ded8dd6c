"""JSON API endpoints."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from sonoscribe.composer.headings import (
    auto_map_heading_candidates,
    classify_heading_candidate,
    detect_heading_candidates,
)
from sonoscribe.composer.payload import extract_patient, parse_model_json
from sonoscribe.composer.profile import (
    build_fallback_profile_seed,
    render_profile_sections,
    sanitize_template_profile,
)
from sonoscribe.composer.renderer import render_custom_template
from sonoscribe.composer.resolver import hash_template_text, sanitize_custom_template_mapping
from sonoscribe.composer.service import TEMPLATE_CUSTOM, compose_report
from sonoscribe.config import settings
from sonoscribe.models import REPORT_STATUSES
from sonoscribe.template_store import TemplateStore, get_template_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_store() -> TemplateStore:
    return get_template_store()


class TemplateBody(BaseModel):
    template_text: str = ""


class RenderBody(BaseModel):
    template_text: str = ""
    mapping: dict | None = None
    overrides: dict[str, str] = Field(default_factory=dict)
    gender: str | None = None
    patient: dict[str, str] = Field(default_factory=dict)
    suppressed_fields: list[str] = Field(default_factory=list)
    organ_states: dict[str, str] = Field(default_factory=dict)
    profile_values: dict[str, str] = Field(default_factory=dict)


class ComposeBody(BaseModel):
    parsed: dict | None = None
    raw_model_text: str | None = None
    template_id: str = "USG_ABDOMEN_MALE"
    custom_template_text: str = ""
    custom_template_gender: str | None = None
    mapping: dict | None = None
    organ_states: dict[str, str] = Field(default_factory=dict)
    save: bool = False


class StatusBody(BaseModel):
    status: str


def _check_template(template_text: str):
    if not template_text.strip():
        raise HTTPException(status_code=400, detail="Template text is empty")
    if len(template_text) > settings.max_template_chars:
        raise HTTPException(
            status_code=413,
            detail=f"Template exceeds {settings.max_template_chars} characters",
        )


def _mapping_payload(mapping: dict) -> dict[str, str]:
    return {key.value: heading for key, heading in mapping.items()}


@router.post("/render")
def render(body: RenderBody, store: TemplateStore = Depends(get_store)):
    _check_template(body.template_text)
    template_hash = hash_template_text(body.template_text)

    if body.mapping is not None:
        mapping = sanitize_custom_template_mapping(body.mapping, settings.max_mapping_heading_chars)
    else:
        mapping = store.get_mapping(template_hash) or {}

    result = render_custom_template(
        body.template_text,
        mapping=mapping,
        overrides=body.overrides,
        gender=body.gender or settings.default_gender,
        patient=body.patient,
        suppressed_fields=body.suppressed_fields,
        organ_states=body.organ_states,
    )
    text = result.text

    profile = store.get_profile(template_hash)
    profile_sections_replaced = 0
    if profile is not None and profile.approved and not result.forced_canonical_fallback:
        values = {**body.overrides, **body.profile_values}
        profiled = render_profile_sections(text, profile, values)
        text = profiled.text
        profile_sections_replaced = profiled.sections_replaced

    return {
        "template_hash": template_hash,
        "text": text,
        "sections_detected": result.sections_detected,
        "sections_replaced": result.sections_replaced,
        "used_fallback_detection": result.used_fallback_detection,
        "forced_canonical_fallback": result.forced_canonical_fallback,
        "fallback_reason": result.fallback_reason,
        "profile_sections_replaced": profile_sections_replaced,
    }


@router.post("/headings")
def headings(body: TemplateBody, store: TemplateStore = Depends(get_store)):
    """Heading candidates, their classification and a proposed mapping."""
    _check_template(body.template_text)
    template_hash = hash_template_text(body.template_text)
    candidates = detect_heading_candidates(body.template_text)
    saved = store.get_mapping(template_hash)

    items = []
    for c in candidates:
        key = classify_heading_candidate(c.raw_text)
        items.append({
            "line_index": c.line_index,
            "text": c.raw_text,
            "section": key.value if key else None,
        })

    return {
        "template_hash": template_hash,
        "candidates": items,
        "auto_mapping": _mapping_payload(auto_map_heading_candidates(candidates)),
        "saved_mapping": _mapping_payload(saved) if saved is not None else None,
    }


@router.post("/template-profile")
def template_profile(body: TemplateBody):
    """Seed an editable profile from the template's heading candidates."""
    _check_template(body.template_text)
    template_hash = hash_template_text(body.template_text)
    profile = sanitize_template_profile(build_fallback_profile_seed(body.template_text), template_hash)
    return {"template_hash": template_hash, "profile": profile.model_dump()}


@router.get("/mappings/{template_hash}")
def get_mapping(template_hash: str, store: TemplateStore = Depends(get_store)):
    mapping = store.get_mapping(template_hash)
    if mapping is None:
        raise HTTPException(status_code=404, detail="Mapping not found")
    return {"template_hash": template_hash, "mapping": _mapping_payload(mapping)}


@router.put("/mappings/{template_hash}")
def put_mapping(template_hash: str, body: dict, store: TemplateStore = Depends(get_store)):
    mapping = store.save_mapping(template_hash, body.get("mapping", body))
    return {"template_hash": template_hash, "mapping": _mapping_payload(mapping)}


@router.get("/profiles/{template_hash}")
def get_profile(template_hash: str, store: TemplateStore = Depends(get_store)):
    profile = store.get_profile(template_hash)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile.model_dump()


@router.put("/profiles/{template_hash}")
def put_profile(template_hash: str, body: dict, store: TemplateStore = Depends(get_store)):
    profile = store.save_profile(template_hash, body.get("profile", body))
    if profile is None:
        raise HTTPException(status_code=400, detail="Profile payload is not usable")
    return profile.model_dump()


@router.post("/profiles/{template_hash}/approve")
def approve_profile(template_hash: str, store: TemplateStore = Depends(get_store)):
    profile = store.approve_profile(template_hash)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile.model_dump()


@router.post("/compose")
def compose(body: ComposeBody, store: TemplateStore = Depends(get_store)):
    """Turn a parsed model payload into a report, optionally saving it as a draft."""
    parsed = body.parsed
    if parsed is None and body.raw_model_text is not None:
        parsed = parse_model_json(body.raw_model_text)
        if parsed is None:
            raise HTTPException(status_code=400, detail="Model output is not valid JSON")
    if parsed is None:
        raise HTTPException(status_code=400, detail="No model payload supplied")

    mapping = None
    profile = None
    if body.template_id == TEMPLATE_CUSTOM:
        _check_template(body.custom_template_text)
        template_hash = hash_template_text(body.custom_template_text)
        if body.mapping is not None:
            mapping = sanitize_custom_template_mapping(body.mapping, settings.max_mapping_heading_chars)
        else:
            mapping = store.get_mapping(template_hash) or {}
        profile = store.get_profile(template_hash)

    composition = compose_report(
        parsed,
        template_id=body.template_id,
        custom_template_text=body.custom_template_text,
        mapping=mapping,
        profile=profile,
        template_gender=body.custom_template_gender,
        organ_states=body.organ_states,
    )

    response = composition.model_dump(mode="json")
    if body.save:
        record = store.save_report(
            template_id=composition.template_id,
            observations_text=composition.observations,
            flags=composition.flags,
            patient={**extract_patient(parsed), "gender": composition.gender.value},
            custom_template_text=body.custom_template_text or None,
            custom_template_gender=body.custom_template_gender,
            mapping=mapping or None,
            profile=profile,
            status="pending_review" if composition.flags else "draft",
        )
        response["report_id"] = record.id
    return response


@router.get("/reports/{report_id}")
def get_report(report_id: int, store: TemplateStore = Depends(get_store)):
    record = store.get_report(report_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return {
        "id": record.id,
        "template_id": record.template_id,
        "status": record.status,
        "patient_name": record.patient_name,
        "patient_gender": record.patient_gender,
        "exam_date": record.exam_date,
        "observations": record.observations_text,
        "flags": json.loads(record.flags_json or "[]"),
    }


@router.put("/reports/{report_id}/status")
def set_report_status(report_id: int, body: StatusBody, store: TemplateStore = Depends(get_store)):
    if body.status not in REPORT_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown status '{body.status}'")
    record = store.set_report_status(report_id, body.status)
    if record is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return {"id": record.id, "status": record.status}
