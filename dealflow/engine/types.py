"""
Shared engine types — process snapshots, schema metadata and validation results.

Everything here is plain data. The engine never talks to a database directly;
storage-specific code converts its rows into these dataclasses at the seam.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

SELECT_TYPE = "select"


class FieldValueKind(str, Enum):
    """Runtime kind of a record value, decided once per value."""
    NULL = "null"
    STR = "str"
    NUM = "num"
    BOOL = "bool"
    STR_ARRAY = "str_array"
    OTHER = "other"


class StageStatus(str, Enum):
    CURRENT = "current"
    NEW = "new"
    OBSOLETE = "obsolete"


# ═════════════════════════════════════════════════════════════════════════════
# Schema metadata
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StageOption:
    """One live option of a select field."""
    value: str
    label: str
    color: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StageOption:
        value = str(data["value"])
        return cls(value=value, label=data.get("label") or value, color=data.get("color"))

    def to_dict(self) -> dict:
        return {"value": self.value, "label": self.label, "color": self.color}


@dataclass(frozen=True)
class FieldInfo:
    """Type and option metadata for one record field."""
    key: str
    label: str
    type: str
    options: tuple[StageOption, ...] = ()
    editable: bool = True

    @property
    def is_categorical(self) -> bool:
        return self.type == SELECT_TYPE

    def option(self, value: str) -> StageOption | None:
        for opt in self.options:
            if opt.value == value:
                return opt
        return None

    def option_label(self, value: str) -> str:
        opt = self.option(value)
        return opt.label if opt else value

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FieldInfo:
        key = data["key"]
        return cls(
            key=key,
            label=data.get("label") or key,
            type=data.get("type", "text"),
            options=tuple(StageOption.from_dict(o) for o in data.get("options") or ()),
            editable=data.get("editable", True),
        )


class SchemaProvider(ABC):
    """Read-only view of the record schema consumed by the engine."""

    @abstractmethod
    def get_field(self, field_key: str) -> FieldInfo | None:
        """Return the field's type and options, or None if it is not in the schema."""

    @abstractmethod
    def list_fields(self) -> list[FieldInfo]:
        """Return every field of the record table, in display order."""

    def field_type(self, field_key: str) -> str | None:
        info = self.get_field(field_key)
        return info.type if info else None

    def field_label(self, field_key: str) -> str:
        info = self.get_field(field_key)
        return info.label if info else field_key

    def option_label(self, field_key: str, value: str) -> str:
        info = self.get_field(field_key)
        return info.option_label(value) if info else value

    def select_fields(self) -> list[FieldInfo]:
        """Categorical fields that have at least one option (candidates to govern)."""
        return [f for f in self.list_fields() if f.is_categorical and f.options]


class StaticSchemaProvider(SchemaProvider):
    """Schema provider over an in-memory list of fields."""

    def __init__(self, fields: Iterable[FieldInfo | Mapping[str, Any]] = ()):
        self._fields: dict[str, FieldInfo] = {}
        for f in fields:
            info = f if isinstance(f, FieldInfo) else FieldInfo.from_dict(f)
            self._fields[info.key] = info

    def get_field(self, field_key: str) -> FieldInfo | None:
        return self._fields.get(field_key)

    def list_fields(self) -> list[FieldInfo]:
        return list(self._fields.values())


# ═════════════════════════════════════════════════════════════════════════════
# Process snapshot
# ═════════════════════════════════════════════════════════════════════════════

def normalize_transitions(raw: Iterable[Any] | None) -> frozenset[tuple[str, str]]:
    """Accept ``[{"from": a, "to": b}]`` or ``[(a, b)]`` and return a set of pairs."""
    pairs = set()
    for item in raw or ():
        if isinstance(item, Mapping):
            pairs.add((str(item["from"]), str(item["to"])))
        else:
            src, dst = item
            pairs.add((str(src), str(dst)))
    return frozenset(pairs)


def normalize_requirements(raw: Mapping[str, Iterable[str]] | None) -> dict[str, frozenset[str]]:
    """Drop stages with no required keys; absence already means "no requirement"."""
    result = {}
    for stage, keys in (raw or {}).items():
        keys = frozenset(str(k) for k in keys or ())
        if keys:
            result[str(stage)] = keys
    return result


@dataclass(frozen=True)
class ProcessDefinition:
    """Immutable snapshot of a Process as seen by the registry and validator."""
    id: str
    name: str
    governed_field_key: str
    governed_field_label: str = ""
    stage_order: tuple[str, ...] = ()
    transitions: frozenset[tuple[str, str]] = frozenset()
    stage_requirements: Mapping[str, frozenset[str]] = field(default_factory=dict)
    enabled: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def required_for(self, stage: str) -> frozenset[str]:
        return self.stage_requirements.get(stage, frozenset())

    def allows(self, from_value: str, to_value: str) -> bool:
        return (from_value, to_value) in self.transitions

    def targets_from(self, stage: str) -> set[str]:
        return {dst for src, dst in self.transitions if src == stage}

    def replace(self, **changes) -> ProcessDefinition:
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProcessDefinition:
        return cls(
            id=data["id"],
            name=data["name"],
            governed_field_key=data["governed_field_key"],
            governed_field_label=data.get("governed_field_label") or "",
            stage_order=tuple(data.get("stage_order") or ()),
            transitions=normalize_transitions(data.get("transitions")),
            stage_requirements=normalize_requirements(data.get("stage_requirements")),
            enabled=bool(data.get("enabled", True)),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "governed_field_key": self.governed_field_key,
            "governed_field_label": self.governed_field_label,
            "stage_order": list(self.stage_order),
            "transitions": [{"from": s, "to": d} for s, d in sorted(self.transitions)],
            "stage_requirements": {
                stage: sorted(keys) for stage, keys in sorted(self.stage_requirements.items())
            },
            "enabled": self.enabled,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Validation & reconciliation results
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MissingField:
    field_key: str
    field_label: str

    def to_dict(self) -> dict:
        return {"field_key": self.field_key, "field_label": self.field_label}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one proposed change on a governed field.

    A denial carries exactly one reason: either ``missing_fields`` is
    non-empty, or ``transition_blocked`` is True.
    """
    ok: bool
    missing_fields: tuple[MissingField, ...] = ()
    transition_blocked: bool = False
    message: str = ""

    @classmethod
    def allowed(cls) -> ValidationResult:
        return cls(ok=True)

    @classmethod
    def missing(cls, fields: Iterable[MissingField], message: str) -> ValidationResult:
        return cls(ok=False, missing_fields=tuple(fields), message=message)

    @classmethod
    def blocked(cls, message: str) -> ValidationResult:
        return cls(ok=False, transition_blocked=True, message=message)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "missing_fields": [f.to_dict() for f in self.missing_fields],
            "transition_blocked": self.transition_blocked,
            "message": self.message,
        }


@dataclass(frozen=True)
class ReconciledStage:
    value: str
    label: str
    color: str | None
    status: StageStatus

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "label": self.label,
            "color": self.color,
            "status": self.status.value,
        }
