"""
Process definition store — CRUD over Processes for one organization scope,
plus active-assignment bookkeeping.

The store owns its in-memory state (Process snapshots and the
``ActiveProcessRegistry``). Every mutation is applied to that state first and
then pushed to the ``ProcessRepository``; if the repository raises, the local
state is restored and a ``PersistenceError`` propagates to the caller.

Concurrent edits of the same Process by two stores are not merged: whichever
repository write lands last wins.

Usage:
    store = ProcessStore.load(repository, "org-1", schema)
    process = store.create({"name": "Sales", "governed_field_key": "stage"})
    store.update(process.id, {"enabled": False})   # clears the active assignment
    result = store.validator(lambda: True).can_change_field(deal, "stage", "a", "b")
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from dealflow.core.exceptions import NotFoundError, PersistenceError, ValidationError
from dealflow.engine.reconciler import reconcile
from dealflow.engine.registry import ActiveProcessRegistry
from dealflow.engine.types import (
    FieldInfo,
    ProcessDefinition,
    ReconciledStage,
    SchemaProvider,
    normalize_requirements,
    normalize_transitions,
)
from dealflow.engine.validator import TransitionValidator

logger = logging.getLogger(__name__)

DEFAULT_COPY_SUFFIX = " (copy)"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ═════════════════════════════════════════════════════════════════════════════
# Persistence collaborator
# ═════════════════════════════════════════════════════════════════════════════

class ProcessRepository(ABC):
    """Backing store for Processes and active assignments.

    Implementations raise ``NotFoundError`` when the Process to update, delete
    or activate is gone (another writer removed it); the store lets it
    through. Any other exception is opaque and wrapped in ``PersistenceError``.
    """

    @abstractmethod
    def list(self, scope: str) -> tuple[list[ProcessDefinition], dict[str, str]]:
        """Return (processes ordered by creation, field_key → active process id)."""

    @abstractmethod
    def create(self, scope: str, process: ProcessDefinition, *, activate: bool = False) -> None:
        """Insert ``process``; when ``activate`` also make it active for its field."""

    @abstractmethod
    def update(
        self,
        scope: str,
        process: ProcessDefinition,
        *,
        clear_active_for: str | None = None,
    ) -> None:
        """Overwrite ``process``; clear the named field's assignment in the same write."""

    @abstractmethod
    def delete(self, scope: str, process_id: str) -> None:
        """Remove the Process and every assignment that references it."""

    @abstractmethod
    def set_active_for_field(self, scope: str, field_key: str, process_id: str | None) -> None:
        """Overwrite (or clear, with None) the active assignment of ``field_key``."""


class InMemoryProcessRepository(ProcessRepository):
    """Dict-backed repository for tooling and tests that run without a database."""

    def __init__(self):
        self._processes: dict[str, dict[str, ProcessDefinition]] = {}
        self._assignments: dict[str, dict[str, str]] = {}

    def list(self, scope):
        processes = sorted(
            self._processes.get(scope, {}).values(),
            key=lambda p: p.created_at or datetime.min.replace(tzinfo=timezone.utc),
        )
        return processes, dict(self._assignments.get(scope, {}))

    def create(self, scope, process, *, activate=False):
        self._processes.setdefault(scope, {})[process.id] = process
        if activate:
            self._assignments.setdefault(scope, {})[process.governed_field_key] = process.id

    def update(self, scope, process, *, clear_active_for=None):
        bucket = self._processes.setdefault(scope, {})
        if process.id not in bucket:
            raise NotFoundError(resource="Process", resource_id=process.id, scope=scope)
        bucket[process.id] = process
        if clear_active_for is not None:
            self._assignments.get(scope, {}).pop(clear_active_for, None)

    def delete(self, scope, process_id):
        if self._processes.get(scope, {}).pop(process_id, None) is None:
            raise NotFoundError(resource="Process", resource_id=process_id, scope=scope)
        assignments = self._assignments.get(scope, {})
        for field_key in [k for k, pid in assignments.items() if pid == process_id]:
            del assignments[field_key]

    def set_active_for_field(self, scope, field_key, process_id):
        assignments = self._assignments.setdefault(scope, {})
        if process_id is None:
            assignments.pop(field_key, None)
        else:
            assignments[field_key] = process_id


# ═════════════════════════════════════════════════════════════════════════════
# Store
# ═════════════════════════════════════════════════════════════════════════════

class ProcessStore:
    """Process CRUD and activation for one organization scope."""

    def __init__(
        self,
        repository: ProcessRepository,
        scope: str,
        schema: SchemaProvider,
        processes: Iterable[ProcessDefinition] = (),
        assignments: Mapping[str, str] | None = None,
        *,
        copy_suffix: str = DEFAULT_COPY_SUFFIX,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_id,
    ):
        self.repository = repository
        self.scope = scope
        self.schema = schema
        self.copy_suffix = copy_suffix
        self._clock = clock
        self._id_factory = id_factory
        self._processes: dict[str, ProcessDefinition] = {p.id: p for p in processes}
        self.registry = ActiveProcessRegistry(self._processes.get, assignments)

    @classmethod
    def load(
        cls,
        repository: ProcessRepository,
        scope: str,
        schema: SchemaProvider,
        **kwargs,
    ) -> ProcessStore:
        """Build a store from the repository's current state for ``scope``."""
        try:
            processes, assignments = repository.list(scope)
        except Exception as exc:
            raise PersistenceError("list", exc) from exc
        logger.debug("Loaded %d process(es) for scope=%s", len(processes), scope)
        return cls(repository, scope, schema, processes, assignments, **kwargs)

    # ── Reads ────────────────────────────────────────────────────────────

    def list(self, governed_field_key: str | None = None) -> list[ProcessDefinition]:
        processes = list(self._processes.values())
        if governed_field_key:
            processes = [p for p in processes if p.governed_field_key == governed_field_key]
        return processes

    def get(self, process_id: str) -> ProcessDefinition:
        process = self._processes.get(process_id)
        if process is None:
            raise NotFoundError(resource="Process", resource_id=process_id, scope=self.scope)
        return process

    def is_active(self, process_id: str) -> bool:
        return self.registry.is_active(process_id)

    def validator(self, enforcement: Callable[[], bool]) -> TransitionValidator:
        return TransitionValidator(self.registry, self.schema, enforcement)

    def reconcile_stages(self, process_id: str) -> list[ReconciledStage]:
        """Saved stage order of ``process_id`` merged with its field's live options."""
        process = self.get(process_id)
        field = self.schema.get_field(process.governed_field_key)
        return reconcile(process.stage_order, field.options if field else ())

    # ── Mutations ────────────────────────────────────────────────────────

    def create(self, data: Mapping[str, Any]) -> ProcessDefinition:
        """Create a Process bound to a select field.

        The first enabled Process of a field (no Process currently resolves
        for it) becomes that field's active Process.

        Raises:
            ValidationError: Missing name, non-select field, malformed
                stage order, transitions, requirements or enabled flag.
            PersistenceError: The repository rejected the insert.
        """
        name = _require_name(data.get("name"))
        field = self._governed_field(data.get("governed_field_key"))
        stage_order = data.get("stage_order")
        if stage_order is None:
            stage_order = [opt.value for opt in field.options]
        now = self._clock()
        process = ProcessDefinition(
            id=self._id_factory(),
            name=name,
            governed_field_key=field.key,
            governed_field_label=data.get("governed_field_label") or field.label,
            stage_order=_stage_order(stage_order),
            transitions=_transitions(data.get("transitions")),
            stage_requirements=_requirements(data.get("stage_requirements")),
            enabled=_require_bool(data.get("enabled", True), "enabled"),
            created_at=now,
            updated_at=now,
        )
        activate = process.enabled and self.registry.resolve(field.key) is None

        with self._optimistic("create"):
            self._processes[process.id] = process
            if activate:
                self.registry.set_active(field.key, process.id)
            self.repository.create(self.scope, process, activate=activate)

        logger.info(
            "Process created id=%s field=%s scope=%s active=%s",
            process.id, field.key, self.scope, activate,
        )
        return process

    def update(self, process_id: str, patch: Mapping[str, Any]) -> ProcessDefinition:
        """Apply a partial update.

        Disabling the active Process, or moving it to another field, clears
        the assignment in the same repository write.
        """
        current = self.get(process_id)
        changes: dict[str, Any] = {}
        if "name" in patch:
            changes["name"] = _require_name(patch["name"])
        if "governed_field_key" in patch and patch["governed_field_key"] != current.governed_field_key:
            field = self._governed_field(patch["governed_field_key"])
            changes["governed_field_key"] = field.key
            changes["governed_field_label"] = field.label
        if patch.get("governed_field_label"):
            changes["governed_field_label"] = patch["governed_field_label"]
        if "stage_order" in patch:
            changes["stage_order"] = _stage_order(patch["stage_order"])
        if "transitions" in patch:
            changes["transitions"] = _transitions(patch["transitions"])
        if "stage_requirements" in patch:
            changes["stage_requirements"] = _requirements(patch["stage_requirements"])
        if "enabled" in patch:
            changes["enabled"] = _require_bool(patch["enabled"], "enabled")

        updated = current.replace(updated_at=self._clock(), **changes)

        clear_field = None
        if self.registry.active_process_id(current.governed_field_key) == process_id and (
            not updated.enabled or updated.governed_field_key != current.governed_field_key
        ):
            clear_field = current.governed_field_key

        with self._optimistic("update"):
            self._processes[process_id] = updated
            if clear_field is not None:
                self.registry.set_active(clear_field, None)
            self.repository.update(self.scope, updated, clear_active_for=clear_field)

        logger.info("Process updated id=%s cleared_active=%s", process_id, clear_field)
        return updated

    def delete(self, process_id: str) -> None:
        """Remove the Process together with any assignment pointing at it."""
        self.get(process_id)
        with self._optimistic("delete"):
            del self._processes[process_id]
            cleared = self.registry.clear_for_process(process_id)
            self.repository.delete(self.scope, process_id)
        logger.info("Process deleted id=%s cleared_fields=%s", process_id, cleared)

    def duplicate(self, process_id: str) -> ProcessDefinition:
        """Clone as a disabled Process; the active assignment is left alone."""
        original = self.get(process_id)
        now = self._clock()
        clone = original.replace(
            id=self._id_factory(),
            name=f"{original.name}{self.copy_suffix}",
            enabled=False,
            created_at=now,
            updated_at=now,
        )
        with self._optimistic("duplicate"):
            self._processes[clone.id] = clone
            self.repository.create(self.scope, clone, activate=False)
        logger.info("Process duplicated id=%s from=%s", clone.id, process_id)
        return clone

    def set_active(self, field_key: str, process_id: str | None) -> None:
        """Make ``process_id`` the active Process for ``field_key`` (None clears).

        Raises:
            NotFoundError: Unknown process id.
            ValidationError: Process disabled or bound to a different field.
        """
        if process_id is not None:
            process = self.get(process_id)
            if not process.enabled:
                raise ValidationError(
                    "A disabled process cannot be activated",
                    details={"process_id": process_id},
                )
            if process.governed_field_key != field_key:
                raise ValidationError(
                    f"Process governs '{process.governed_field_key}', not '{field_key}'",
                    details={"governed_field_key": process.governed_field_key},
                )

        with self._optimistic("set_active"):
            self.registry.set_active(field_key, process_id)
            self.repository.set_active_for_field(self.scope, field_key, process_id)
        logger.info("Active process for field=%s scope=%s → %s", field_key, self.scope, process_id)

    # ── Internals ────────────────────────────────────────────────────────

    def _governed_field(self, field_key: Any) -> FieldInfo:
        if not field_key or not isinstance(field_key, str):
            raise ValidationError(
                "governed_field_key is required",
                details={"governed_field_key": "required"},
            )
        field = self.schema.get_field(field_key)
        if field is None or not field.is_categorical:
            raise ValidationError(
                f"Field '{field_key}' is not a select field",
                details={"governed_field_key": field_key},
            )
        return field

    @contextmanager
    def _optimistic(self, operation: str):
        processes = dict(self._processes)
        assignments = self.registry.assignments()
        try:
            yield
        except Exception as exc:
            self._processes.clear()
            self._processes.update(processes)
            self.registry.restore(assignments)
            if isinstance(exc, NotFoundError):
                logger.info("Process %s for scope=%s hit a removed process: %s",
                            operation, self.scope, exc)
                raise
            logger.warning("Process %s failed for scope=%s, local state restored: %s",
                           operation, self.scope, exc)
            raise PersistenceError(operation, exc) from exc


def _require_name(value: Any) -> str:
    name = (value or "").strip() if isinstance(value, str) else ""
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    return name


def _stage_order(values: Any) -> tuple[str, ...]:
    if not isinstance(values, (list, tuple)) or not all(_is_key(v) for v in values):
        raise ValidationError(
            "stage_order must be a list of stage values",
            details={"stage_order": "invalid"},
        )
    order = tuple(values)
    duplicates = sorted({v for v in order if order.count(v) > 1})
    if duplicates:
        raise ValidationError(
            "stage_order contains duplicate stages",
            details={"stage_order": duplicates},
        )
    return order


def _is_key(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _require_bool(value: Any, key: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be a boolean", details={key: "invalid"})
    return value


def _transitions(raw: Any) -> frozenset[tuple[str, str]]:
    """Validate ``[{"from": a, "to": b}]`` / ``[(a, b)]`` before normalizing."""
    if raw is None:
        return frozenset()
    if not isinstance(raw, (list, tuple)):
        raise ValidationError(
            "transitions must be a list", details={"transitions": "invalid"},
        )
    for index, item in enumerate(raw):
        if isinstance(item, Mapping):
            pair = (item.get("from"), item.get("to"))
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            pair = tuple(item)
        else:
            pair = (None, None)
        if not all(_is_key(v) for v in pair):
            raise ValidationError(
                "each transition needs a 'from' and a 'to' stage",
                details={"transitions": {str(index): "invalid"}},
            )
    return normalize_transitions(raw)


def _requirements(raw: Any) -> dict[str, frozenset[str]]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValidationError(
            "stage_requirements must be an object",
            details={"stage_requirements": "invalid"},
        )
    for stage, keys in raw.items():
        if keys is None:
            continue
        if not isinstance(keys, (list, tuple)) or not all(_is_key(k) for k in keys):
            raise ValidationError(
                f"stage_requirements for '{stage}' must be a list of field keys",
                details={"stage_requirements": {str(stage): "invalid"}},
            )
    return normalize_requirements(raw)
