"""
Record schema service layer.

Centralises all ORM queries and mutations for FieldDefinition so that
blueprints remain HTTP-only, and exposes the stored schema to the engine
through ``DatabaseSchemaProvider``. Every db.session.commit() in this module
is intentional and constitutes the single source of truth for transaction
ownership.
"""

import logging

from dealflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from dealflow.engine.types import FieldInfo, SchemaProvider, StageOption
from dealflow.models import db
from dealflow.models.schema import FIELD_TYPES, FieldDefinition

logger = logging.getLogger(__name__)

# Technical columns never offered as stage exit requirements
_NON_REQUIREMENT_KEYS = frozenset({"id", "created_at", "updated_at"})


# ──────────────────────────────────────────────────────────────────────────────
# Field Definitions
# ──────────────────────────────────────────────────────────────────────────────

def list_field_definitions(
    entity_type: str,
    limit: int = 200,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """Return paginated field definitions of a record table.

    Args:
        entity_type: Record table name (e.g. "deals").
        limit: Maximum number of records to return.
        offset: Number of records to skip.

    Returns:
        Tuple of (list of to_dict results, total count).
    """
    q = FieldDefinition.query.filter_by(entity_type=entity_type).order_by(
        FieldDefinition.sort_order,
        FieldDefinition.id,
    )
    total: int = q.count()
    items = q.limit(limit).offset(offset).all()
    return [f.to_dict() for f in items], total


def create_field_definition(entity_type: str, data: dict) -> dict:
    """Persist a new field definition, enforcing key uniqueness per table.

    Args:
        entity_type: Record table the field belongs to.
        data: Validated input dict from blueprint.

    Returns:
        Serialized field definition dict.

    Raises:
        ConflictError: If field_key already exists for entity_type.
        ValidationError: Unknown field_type or malformed options.
    """
    field_key: str = data["field_key"]

    duplicate = FieldDefinition.query.filter_by(
        entity_type=entity_type,
        field_key=field_key,
    ).first()
    if duplicate:
        raise ConflictError(resource="FieldDefinition", field="field_key", value=field_key)

    field_type = data.get("field_type", "text")
    _check_field_type(field_type)

    field = FieldDefinition(
        entity_type=entity_type,
        field_key=field_key,
        field_label=data.get("field_label", field_key),
        field_type=field_type,
        options=_clean_options(data.get("options", [])),
        is_required=data.get("is_required", False),
        is_editable=data.get("is_editable", True),
        sort_order=data.get("sort_order", 0),
        description=data.get("description", ""),
    )
    db.session.add(field)
    db.session.commit()
    logger.info("FieldDefinition created id=%s entity_type=%s key=%s", field.id, entity_type, field_key)
    return field.to_dict()


def get_field_definition(fid: int) -> dict:
    """Fetch a single field definition by PK.

    Raises:
        NotFoundError: If no record with that PK exists.
    """
    field = db.session.get(FieldDefinition, fid)
    if not field:
        raise NotFoundError(resource="FieldDefinition", resource_id=fid)
    return field.to_dict()


def update_field_definition(fid: int, data: dict) -> dict:
    """Apply a partial update to a field definition.

    Changing ``options`` of a select field is how stages are added or removed;
    Processes keep their saved order and see the change through the stage
    reconciler.

    Raises:
        NotFoundError: If record does not exist.
        ValidationError: Unknown field_type or malformed options.
    """
    field = db.session.get(FieldDefinition, fid)
    if not field:
        raise NotFoundError(resource="FieldDefinition", resource_id=fid)

    if "field_type" in data:
        _check_field_type(data["field_type"])
    if "options" in data:
        data = {**data, "options": _clean_options(data["options"])}

    mutable_attrs = (
        "field_label", "field_type", "options", "is_required",
        "is_editable", "sort_order", "description",
    )
    for attr in mutable_attrs:
        if attr in data:
            setattr(field, attr, data[attr])

    db.session.commit()
    logger.info("FieldDefinition updated id=%s", fid)
    return field.to_dict()


def delete_field_definition(fid: int) -> None:
    """Delete a field definition.

    Processes governing or requiring the field are left as they are; the
    engine treats a vanished field as unconstrained.

    Raises:
        NotFoundError: If record does not exist.
    """
    field = db.session.get(FieldDefinition, fid)
    if not field:
        raise NotFoundError(resource="FieldDefinition", resource_id=fid)
    db.session.delete(field)
    db.session.commit()
    logger.info("FieldDefinition deleted id=%s", fid)


def _check_field_type(field_type: str) -> None:
    if field_type not in FIELD_TYPES:
        raise ValidationError(
            f"Unknown field_type '{field_type}'",
            details={"field_type": list(FIELD_TYPES)},
        )


def _clean_options(options) -> list[dict]:
    if not isinstance(options, list):
        raise ValidationError("options must be a list", details={"options": "list required"})
    cleaned = []
    seen = set()
    for opt in options:
        if not isinstance(opt, dict) or not opt.get("value"):
            raise ValidationError(
                "Each option needs a value",
                details={"options": opt},
            )
        value = str(opt["value"])
        if value in seen:
            raise ValidationError(
                f"Duplicate option value '{value}'",
                details={"options": value},
            )
        seen.add(value)
        cleaned.append({
            "value": value,
            "label": opt.get("label") or value,
            "color": opt.get("color"),
        })
    return cleaned


# ──────────────────────────────────────────────────────────────────────────────
# Engine-facing provider
# ──────────────────────────────────────────────────────────────────────────────

def _to_field_info(field: FieldDefinition) -> FieldInfo:
    return FieldInfo(
        key=field.field_key,
        label=field.field_label or field.field_key,
        type=field.field_type or "text",
        options=tuple(StageOption.from_dict(o) for o in field.options or []),
        editable=bool(field.is_editable),
    )


class DatabaseSchemaProvider(SchemaProvider):
    """Schema provider over the FieldDefinition rows of one record table.

    Rows are read once, on construction; build a new provider per request.
    """

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        rows = (
            FieldDefinition.query
            .filter_by(entity_type=entity_type)
            .order_by(FieldDefinition.sort_order, FieldDefinition.id)
            .all()
        )
        self._fields = {row.field_key: _to_field_info(row) for row in rows}

    def get_field(self, field_key: str) -> FieldInfo | None:
        return self._fields.get(field_key)

    def list_fields(self) -> list[FieldInfo]:
        return list(self._fields.values())


def list_select_fields(entity_type: str) -> list[dict]:
    """Select fields with options — the fields a Process may govern."""
    provider = DatabaseSchemaProvider(entity_type)
    return [
        {
            "key": f.key,
            "label": f.label,
            "options": [o.to_dict() for o in f.options],
        }
        for f in provider.select_fields()
    ]


def list_requirement_fields(entity_type: str) -> list[dict]:
    """Editable, non-technical fields that may be required to exit a stage."""
    provider = DatabaseSchemaProvider(entity_type)
    return [
        {"key": f.key, "label": f.label, "type": f.type}
        for f in provider.list_fields()
        if f.editable and f.key not in _NON_REQUIREMENT_KEYS
    ]
