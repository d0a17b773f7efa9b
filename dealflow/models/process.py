"""
Process models — persisted process definitions and the per-field
active assignment.

A Process governs exactly one select field of the record schema. At most one
Process is active per (organization, field); the assignment row is removed
whenever its Process is deleted.
"""

import uuid
from datetime import datetime, timezone

from dealflow.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Process(db.Model):
    """A named bundle of stage order, transition whitelist and exit requirements."""

    __tablename__ = "processes"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    organization_id = db.Column(db.String(100), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    governed_field_key = db.Column(db.String(100), nullable=False)
    governed_field_label = db.Column(db.String(200), default="")
    stage_order = db.Column(db.JSON, default=list)         # ["prospecting", "qualification", ...]
    transitions = db.Column(db.JSON, default=list)         # [{"from": "a", "to": "b"}, ...]
    stage_requirements = db.Column(db.JSON, default=dict)  # {"negotiation": ["value", ...]}
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.Index("ix_processes_org_field", "organization_id", "governed_field_key"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "governed_field_key": self.governed_field_key,
            "governed_field_label": self.governed_field_label,
            "stage_order": self.stage_order or [],
            "transitions": self.transitions or [],
            "stage_requirements": self.stage_requirements or {},
            "enabled": self.enabled,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ActiveProcessAssignment(db.Model):
    """governed field → the single Process currently enforced for it."""

    __tablename__ = "active_process_assignments"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(100), nullable=False)
    governed_field_key = db.Column(db.String(100), nullable=False)
    process_id = db.Column(
        db.String(36),
        db.ForeignKey("processes.id", ondelete="CASCADE"),
        nullable=False,
    )
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint(
            "organization_id", "governed_field_key", name="uq_active_process_field",
        ),
    )

    def to_dict(self):
        return {
            "organization_id": self.organization_id,
            "governed_field_key": self.governed_field_key,
            "process_id": self.process_id,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
