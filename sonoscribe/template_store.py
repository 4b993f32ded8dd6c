"""Persistence for template mappings, template profiles and composed reports.

Usage:
    from sonoscribe.template_store import get_template_store

    store = get_template_store()
    mapping = store.get_mapping(template_hash)
    profile = store.get_profile(template_hash)

Mappings and profiles pass through the sanitizers on the way in and on the
way out.
"""

import datetime
import json
import logging

from sonoscribe.composer.profile import TemplateProfile, sanitize_template_profile
from sonoscribe.composer.resolver import mapping_to_json, sanitize_custom_template_mapping
from sonoscribe.composer.sections import SectionKey
from sonoscribe.config import settings
from sonoscribe.models import REPORT_STATUSES, ReportRecord, TemplateMappingRow, TemplateProfileRow

logger = logging.getLogger(__name__)


class TemplateStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Heading mappings
    # ------------------------------------------------------------------

    def get_mapping(self, template_hash: str) -> dict[SectionKey, str] | None:
        with self._session_factory() as session:
            row = session.query(TemplateMappingRow).filter_by(template_hash=template_hash).first()
            if row is None:
                return None
            return sanitize_custom_template_mapping(row.mapping_json, settings.max_mapping_heading_chars)

    def save_mapping(self, template_hash: str, raw_mapping) -> dict[SectionKey, str]:
        mapping = sanitize_custom_template_mapping(raw_mapping, settings.max_mapping_heading_chars)
        with self._session_factory() as session:
            row = session.query(TemplateMappingRow).filter_by(template_hash=template_hash).first()
            if row:
                row.mapping_json = mapping_to_json(mapping)
            else:
                session.add(TemplateMappingRow(template_hash=template_hash, mapping_json=mapping_to_json(mapping)))
            session.commit()
        logger.info("Saved mapping for %s (%d headings)", template_hash, len(mapping))
        return mapping

    # ------------------------------------------------------------------
    # Template profiles
    # ------------------------------------------------------------------

    def get_profile(self, template_hash: str) -> TemplateProfile | None:
        with self._session_factory() as session:
            row = session.query(TemplateProfileRow).filter_by(template_hash=template_hash).first()
            if row is None:
                return None
            profile = sanitize_template_profile(row.profile_json, template_hash=template_hash)
            if profile is not None:
                profile.approved = bool(row.approved)
            return profile

    def save_profile(self, template_hash: str, raw_profile) -> TemplateProfile | None:
        """Sanitize and upsert a profile. Saving an edit clears approval."""
        existing = self.get_profile(template_hash)
        profile = sanitize_template_profile(raw_profile, template_hash=template_hash)
        if profile is None:
            return None
        if existing is not None:
            profile.created_at = existing.created_at
        profile.approved = False

        with self._session_factory() as session:
            row = session.query(TemplateProfileRow).filter_by(template_hash=template_hash).first()
            if row is None:
                row = TemplateProfileRow(template_hash=template_hash)
                session.add(row)
            row.version = profile.version
            row.approved = False
            row.profile_json = profile.model_dump_json()
            session.commit()
        logger.info(
            "Saved profile for %s (%d sections, %d fields)",
            template_hash, len(profile.sections), len(profile.fields),
        )
        return profile

    def approve_profile(self, template_hash: str) -> TemplateProfile | None:
        with self._session_factory() as session:
            row = session.query(TemplateProfileRow).filter_by(template_hash=template_hash).first()
            if row is None:
                return None
            profile = sanitize_template_profile(row.profile_json, template_hash=template_hash)
            if profile is None:
                return None
            profile.approved = True
            row.approved = True
            row.profile_json = profile.model_dump_json()
            session.commit()
        logger.info("Approved profile for %s", template_hash)
        return profile

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def save_report(
        self,
        template_id: str,
        observations_text: str,
        flags: list[str],
        patient: dict | None = None,
        custom_template_text: str | None = None,
        custom_template_gender: str | None = None,
        mapping: dict | None = None,
        profile: TemplateProfile | None = None,
        status: str = "draft",
    ) -> ReportRecord:
        if status not in REPORT_STATUSES:
            raise ValueError(f"Unknown report status '{status}'")
        patient = patient or {}
        record = ReportRecord(
            template_id=template_id,
            patient_name=patient.get("name") or None,
            patient_gender=patient.get("gender") or None,
            exam_date=patient.get("date") or None,
            status=status,
            observations_text=observations_text,
            flags_json=json.dumps(flags),
            custom_template_text=custom_template_text,
            custom_template_gender=custom_template_gender,
            custom_template_mapping_json=mapping_to_json(mapping) if mapping else None,
            custom_template_profile_json=profile.model_dump_json() if profile else None,
        )
        with self._session_factory() as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            session.expunge(record)
        return record

    def get_report(self, report_id: int) -> ReportRecord | None:
        with self._session_factory() as session:
            record = session.query(ReportRecord).filter_by(id=report_id).first()
            if record:
                session.expunge(record)
            return record

    def set_report_status(self, report_id: int, status: str) -> ReportRecord | None:
        if status not in REPORT_STATUSES:
            raise ValueError(f"Unknown report status '{status}'")
        with self._session_factory() as session:
            record = session.query(ReportRecord).filter_by(id=report_id).first()
            if record is None:
                return None
            record.status = status
            record.updated_at = datetime.datetime.utcnow()
            session.commit()
            session.refresh(record)
            session.expunge(record)
            return record


# Module-level singleton, initialized lazily after database.py sets up SessionLocal
_template_store: TemplateStore | None = None


def get_template_store() -> TemplateStore:
    global _template_store
    if _template_store is None:
        from sonoscribe.database import SessionLocal
        _template_store = TemplateStore(SessionLocal)
    return _template_store
