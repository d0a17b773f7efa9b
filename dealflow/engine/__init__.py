"""
Process validation engine.

Pure, storage-agnostic rules for governed select fields:
    is_filled            — field completeness policy
    reconcile            — saved stage order vs. live schema options
    ActiveProcessRegistry — field → active Process
    ProcessStore         — Process CRUD + activation over a ProcessRepository
    TransitionValidator  — can_change_field(record, field, from, to)
"""

from dealflow.engine.completeness import classify_value, is_filled
from dealflow.engine.reconciler import option_status, pickable_stages, reconcile
from dealflow.engine.registry import ActiveProcessRegistry
from dealflow.engine.store import InMemoryProcessRepository, ProcessRepository, ProcessStore
from dealflow.engine.types import (
    FieldInfo,
    FieldValueKind,
    MissingField,
    ProcessDefinition,
    ReconciledStage,
    SchemaProvider,
    StageOption,
    StageStatus,
    StaticSchemaProvider,
    ValidationResult,
)
from dealflow.engine.validator import (
    TransitionValidator,
    evaluate_process,
    validate_exit,
    validate_transition,
)

__all__ = [
    "ActiveProcessRegistry",
    "FieldInfo",
    "FieldValueKind",
    "InMemoryProcessRepository",
    "MissingField",
    "ProcessDefinition",
    "ProcessRepository",
    "ProcessStore",
    "ReconciledStage",
    "SchemaProvider",
    "StageOption",
    "StageStatus",
    "StaticSchemaProvider",
    "TransitionValidator",
    "ValidationResult",
    "classify_value",
    "evaluate_process",
    "is_filled",
    "option_status",
    "pickable_stages",
    "reconcile",
    "validate_exit",
    "validate_transition",
]
