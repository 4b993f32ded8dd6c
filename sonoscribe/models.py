import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


REPORT_STATUSES = ("draft", "pending_review", "completed", "discarded")


class TemplateMappingRow(Base):
    __tablename__ = "template_mappings"

    template_hash = Column(String, primary_key=True)
    mapping_json = Column(Text, nullable=False, default="{}")
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())


class TemplateProfileRow(Base):
    __tablename__ = "template_profiles"

    template_hash = Column(String, primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    approved = Column(Boolean, nullable=False, default=False)
    profile_json = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())


class ReportRecord(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    template_id = Column(String, nullable=False)

    # Patient
    patient_name = Column(String, nullable=True)
    patient_gender = Column(String, nullable=True)
    exam_date = Column(String, nullable=True)

    # Status: draft / pending_review / completed / discarded
    status = Column(String, nullable=False, default="draft")

    # Composed output
    observations_text = Column(Text, nullable=True)
    flags_json = Column(Text, nullable=True)

    # Custom template snapshot used for this report
    custom_template_text = Column(Text, nullable=True)
    custom_template_gender = Column(String, nullable=True)
    custom_template_mapping_json = Column(Text, nullable=True)
    custom_template_profile_json = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.datetime.utcnow)
    updated_at = Column(
        DateTime, nullable=False, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow,
    )

    __table_args__ = (
        Index("ix_reports_status", "status"),
        Index("ix_reports_template_id", "template_id"),
        Index("ix_reports_patient_name", "patient_name"),
    )
