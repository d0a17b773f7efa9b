"""
Process service — wires the engine to the application database.

Builds a ``ProcessStore`` per request from ``SqlProcessRepository`` and the
``DatabaseSchemaProvider`` of the configured record table, reads the
global enforcement flag, and exposes the validation entry point used by every
editor that commits a change to a governed field.

Usage:
    from dealflow.services import process_service

    result = process_service.can_change_field(
        "org-1", deal, "stage", "negotiation", "closing",
    )
    if not result.ok:
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from dealflow.engine.reconciler import pickable_stages
from dealflow.engine.store import ProcessStore
from dealflow.engine.types import ValidationResult
from dealflow.engine.validator import validate_exit
from dealflow.models import db
from dealflow.models.feature_flag import FeatureFlag
from dealflow.services.process_repository import SqlProcessRepository
from dealflow.services.schema_service import DatabaseSchemaProvider

logger = logging.getLogger(__name__)

ENFORCEMENT_FLAG = "process_enforcement"


# ── Store & enforcement ──────────────────────────────────────────────────


def get_store(scope: str) -> ProcessStore:
    """Load the organization's Processes into a fresh store."""
    schema = DatabaseSchemaProvider(current_app.config["RECORD_ENTITY_TYPE"])
    return ProcessStore.load(
        SqlProcessRepository(),
        scope,
        schema,
        copy_suffix=current_app.config["PROCESS_COPY_SUFFIX"],
    )


def is_enforcement_enabled() -> bool:
    """Current value of the global enforcement flag (not cached)."""
    flag = FeatureFlag.query.filter_by(key=ENFORCEMENT_FLAG).first()
    if flag is None:
        return current_app.config["PROCESS_ENFORCEMENT_DEFAULT"]
    return flag.enabled


def set_enforcement(enabled: bool, actor: str = "system") -> bool:
    """Turn enforcement on or off for every organization."""
    flag = FeatureFlag.query.filter_by(key=ENFORCEMENT_FLAG).first()
    if flag is None:
        flag = FeatureFlag(key=ENFORCEMENT_FLAG)
        db.session.add(flag)
    flag.enabled = enabled
    flag.updated_by = actor
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to set process enforcement to %s", enabled)
        raise
    logger.info("Process enforcement set to %s by %s", enabled, actor)
    return flag.enabled


# ── Validation ───────────────────────────────────────────────────────────


def can_change_field(
    scope: str,
    record: Mapping[str, Any] | None,
    field_key: str,
    from_value: str | None,
    to_value: str | None,
    store: ProcessStore | None = None,
) -> ValidationResult:
    """Decide whether ``field_key`` may change from ``from_value`` to ``to_value``."""
    store = store or get_store(scope)
    validator = store.validator(is_enforcement_enabled)
    return validator.can_change_field(record, field_key, from_value, to_value)


def available_transitions(
    scope: str,
    record: Mapping[str, Any] | None,
    field_key: str,
    from_value: str,
) -> dict:
    """Destinations the validator would accept from ``from_value``.

    Returns:
        {"targets": [option dicts], "exit": ValidationResult dict}. ``targets``
        is empty when the record cannot leave ``from_value`` at all.
    """
    store = get_store(scope)
    record = record or {}
    field = store.schema.get_field(field_key)
    options = list(field.options) if field else []

    process = store.registry.resolve(field_key)
    if process is not None and is_enforcement_enabled():
        exit_result = validate_exit(process, record, from_value, store.schema)
    else:
        exit_result = ValidationResult.allowed()

    targets = [
        opt.to_dict()
        for opt in options
        if opt.value != from_value
        and can_change_field(scope, record, field_key, from_value, opt.value, store=store).ok
    ]
    return {"targets": targets, "exit": exit_result.to_dict()}


# ── Configuration views ──────────────────────────────────────────────────


def process_payload(store: ProcessStore, process_id: str) -> dict:
    """Process dict enriched with its activation state."""
    data = store.get(process_id).to_dict()
    data["is_active"] = store.is_active(process_id)
    return data


def stages_payload(store: ProcessStore, process_id: str) -> dict:
    """Reconciled stages of a Process and the subset offered in pickers."""
    stages = store.reconcile_stages(process_id)
    return {
        "stages": [s.to_dict() for s in stages],
        "pickable": [s.value for s in pickable_stages(stages)],
    }
