"""Record schema models — field definitions backing the Schema Provider."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from dealflow.models import db


def _utcnow():
    return datetime.now(timezone.utc)


FIELD_TYPES = (
    "text",
    "number",
    "currency",
    "select",
    "multi-select",
    "date",
    "boolean",
    "relation",
)


class FieldDefinition(db.Model):
    """One column of a record table (e.g. the ``stage`` column of ``deals``)."""

    __tablename__ = "field_definitions"

    id = Column(Integer, primary_key=True)
    entity_type = Column(String(50), nullable=False, default="deals")
    field_key = Column(String(100), nullable=False)
    field_label = Column(String(200), default="")
    field_type = Column(
        String(30), default="text"
    )  # text | number | currency | select | multi-select | date | boolean | relation
    options = Column(JSON, default=list)  # For select: [{"value":"v","label":"l","color":"c"},...]
    is_required = Column(Boolean, default=False)
    is_editable = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)
    description = Column(Text, default="")
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("entity_type", "field_key", name="uq_field_definition_key"),
        Index("ix_fd_entity", "entity_type", "sort_order"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "field_key": self.field_key,
            "field_label": self.field_label,
            "field_type": self.field_type,
            "options": self.options or [],
            "is_required": self.is_required,
            "is_editable": self.is_editable,
            "sort_order": self.sort_order,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
