"""
SQL persistence for the process store.

``SqlProcessRepository`` implements ``ProcessRepository`` on top of the
Flask-SQLAlchemy session. Each method is one transaction: a Process write
and the assignment change that must accompany it (clear on disable, clear on
delete, activate on create) commit together or not at all.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from dealflow.core.exceptions import NotFoundError
from dealflow.engine.store import ProcessRepository
from dealflow.engine.types import ProcessDefinition
from dealflow.models import db
from dealflow.models.process import ActiveProcessAssignment, Process

logger = logging.getLogger(__name__)


def to_definition(row: Process) -> ProcessDefinition:
    """Convert a Process row into the engine's immutable snapshot."""
    return ProcessDefinition.from_dict({
        "id": row.id,
        "name": row.name,
        "governed_field_key": row.governed_field_key,
        "governed_field_label": row.governed_field_label,
        "stage_order": row.stage_order,
        "transitions": row.transitions,
        "stage_requirements": row.stage_requirements,
        "enabled": row.enabled,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    })


def _apply(row: Process, process: ProcessDefinition) -> None:
    data = process.to_dict()
    row.name = process.name
    row.governed_field_key = process.governed_field_key
    row.governed_field_label = process.governed_field_label
    row.stage_order = data["stage_order"]
    row.transitions = data["transitions"]
    row.stage_requirements = data["stage_requirements"]
    row.enabled = process.enabled
    row.created_at = process.created_at or row.created_at
    row.updated_at = process.updated_at or row.updated_at


class SqlProcessRepository(ProcessRepository):
    """Processes and active assignments stored in the application database."""

    def list(self, scope):
        rows = (
            Process.query
            .filter_by(organization_id=scope)
            .order_by(Process.created_at, Process.id)
            .all()
        )
        assignments = {
            a.governed_field_key: a.process_id
            for a in ActiveProcessAssignment.query.filter_by(organization_id=scope).all()
        }
        return [to_definition(r) for r in rows], assignments

    def create(self, scope, process, *, activate=False):
        with self._transaction("create", process.id):
            row = Process(id=process.id, organization_id=scope)
            _apply(row, process)
            db.session.add(row)
            if activate:
                db.session.flush()
                self._set_assignment(scope, process.governed_field_key, process.id)

    def update(self, scope, process, *, clear_active_for=None):
        with self._transaction("update", process.id):
            row = self._get_row(scope, process.id)
            _apply(row, process)
            if clear_active_for is not None:
                self._set_assignment(scope, clear_active_for, None)

    def delete(self, scope, process_id):
        with self._transaction("delete", process_id):
            row = self._get_row(scope, process_id)
            ActiveProcessAssignment.query.filter_by(
                organization_id=scope, process_id=process_id,
            ).delete(synchronize_session=False)
            db.session.delete(row)

    def set_active_for_field(self, scope, field_key, process_id):
        with self._transaction("set_active", process_id):
            if process_id is not None:
                self._get_row(scope, process_id)
            self._set_assignment(scope, field_key, process_id)

    # ── Internals ────────────────────────────────────────────────────────

    def _get_row(self, scope: str, process_id: str) -> Process:
        row = Process.query.filter_by(id=process_id, organization_id=scope).first()
        if row is None:
            raise NotFoundError(resource="Process", resource_id=process_id, scope=scope)
        return row

    def _set_assignment(self, scope: str, field_key: str, process_id: str | None) -> None:
        existing = ActiveProcessAssignment.query.filter_by(
            organization_id=scope, governed_field_key=field_key,
        ).first()
        if process_id is None:
            if existing:
                db.session.delete(existing)
        elif existing:
            existing.process_id = process_id
        else:
            db.session.add(ActiveProcessAssignment(
                organization_id=scope,
                governed_field_key=field_key,
                process_id=process_id,
            ))

    @contextmanager
    def _transaction(self, operation: str, process_id: str | None):
        """Flushes, autoflushing queries and the commit share one rollback."""
        try:
            yield
            db.session.commit()
        except NotFoundError:
            db.session.rollback()
            raise
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Process %s failed to commit process=%s", operation, process_id)
            raise
