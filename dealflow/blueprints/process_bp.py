"""
Process configuration & validation API.

Blueprint: processes_bp
Prefix: /api/v1

Endpoints:
  Process definitions:
    GET/POST        /processes                       -- List/create
    GET/PUT/DELETE  /processes/<id>                  -- Single process CRUD
    POST            /processes/<id>/duplicate        -- Disabled copy
    GET             /processes/<id>/stages           -- Stage order reconciled with schema

  Activation & enforcement:
    GET             /processes/active                -- field_key → process id map
    POST            /processes/set-active            -- {governed_field_key, process_id|null}
    GET/PUT         /processes/enforcement           -- Global enforcement flag

  Validation:
    POST            /processes/validate              -- can_change_field
    POST            /processes/available-transitions -- Accepted destinations from a stage

The organization scope comes from the X-Organization-Id header (or an
``organization_id`` query/body field). Rule violations are returned as data
with HTTP 200; only malformed requests and configuration errors are non-2xx.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from dealflow.core.exceptions import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from dealflow.services import process_service as svc
from dealflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

processes_bp = Blueprint("processes", __name__, url_prefix="/api/v1")


# ── Scope helpers ─────────────────────────────────────────────────────────────


def _scope() -> str | None:
    """Extract the organization scope from header, query string or JSON body."""
    scope = request.headers.get("X-Organization-Id") or request.args.get("organization_id")
    if scope:
        return scope
    data: dict = request.get_json(silent=True) or {}
    return data.get("organization_id") or None


def _scope_required() -> tuple[str | None, tuple | None]:
    scope = _scope()
    if not scope:
        return None, api_error(E.SCOPE_REQUIRED, "X-Organization-Id header is required")
    return scope, None


# ── Error handlers ────────────────────────────────────────────────────────────


@processes_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, f"{error.resource} not found")


@processes_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.PROCESS_RULE, str(error), details=error.details)


@processes_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_DUPLICATE, str(error))


@processes_bp.errorhandler(PersistenceError)
def _handle_persistence(error: PersistenceError):
    logger.error("Process persistence failure operation=%s: %s", error.operation, error.cause)
    return api_error(E.DATABASE, f"Could not {error.operation} process")


@processes_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in processes_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ═════════════════════════════════════════════════════════════════════════
# Process definitions
# ═════════════════════════════════════════════════════════════════════════


@processes_bp.route("/processes", methods=["GET"])
def list_processes():
    """List the organization's processes, optionally for one governed field."""
    scope, err = _scope_required()
    if err:
        return err
    store = svc.get_store(scope)
    field_key = request.args.get("governed_field_key") or None
    items = [svc.process_payload(store, p.id) for p in store.list(field_key)]
    return jsonify({"processes": items, "total": len(items)}), 200


@processes_bp.route("/processes", methods=["POST"])
def create_process():
    """Create a process.

    Body: {
        name, governed_field_key, governed_field_label?, stage_order?,
        transitions?: [{from, to}], stage_requirements?: {stage: [field_key]},
        enabled?
    }
    Returns: created process (201). The first enabled process of a field
    becomes active.
    """
    scope, err = _scope_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    if len(name) > 200:
        return api_error(E.VALIDATION_INVALID, "name must be <= 200 chars")
    if not data.get("governed_field_key"):
        return api_error(E.VALIDATION_REQUIRED, "governed_field_key is required")

    store = svc.get_store(scope)
    process = store.create(data)
    return jsonify({"process": svc.process_payload(store, process.id)}), 201


@processes_bp.route("/processes/<process_id>", methods=["GET"])
def get_process(process_id):
    scope, err = _scope_required()
    if err:
        return err
    store = svc.get_store(scope)
    return jsonify({"process": svc.process_payload(store, process_id)}), 200


@processes_bp.route("/processes/<process_id>", methods=["PUT"])
def update_process(process_id):
    """Partial update. Disabling the active process clears its activation."""
    scope, err = _scope_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    store = svc.get_store(scope)
    store.update(process_id, data)
    return jsonify({"process": svc.process_payload(store, process_id)}), 200


@processes_bp.route("/processes/<process_id>", methods=["DELETE"])
def delete_process(process_id):
    scope, err = _scope_required()
    if err:
        return err
    svc.get_store(scope).delete(process_id)
    return jsonify({"deleted": True}), 200


@processes_bp.route("/processes/<process_id>/duplicate", methods=["POST"])
def duplicate_process(process_id):
    """Copy a process; the copy starts disabled and inactive."""
    scope, err = _scope_required()
    if err:
        return err
    store = svc.get_store(scope)
    clone = store.duplicate(process_id)
    return jsonify({"process": svc.process_payload(store, clone.id)}), 201


@processes_bp.route("/processes/<process_id>/stages", methods=["GET"])
def get_process_stages(process_id):
    """Stages tagged current / new / obsolete against the live schema."""
    scope, err = _scope_required()
    if err:
        return err
    store = svc.get_store(scope)
    return jsonify(svc.stages_payload(store, process_id)), 200


# ═════════════════════════════════════════════════════════════════════════
# Activation & enforcement
# ═════════════════════════════════════════════════════════════════════════


@processes_bp.route("/processes/active", methods=["GET"])
def get_active_processes():
    scope, err = _scope_required()
    if err:
        return err
    store = svc.get_store(scope)
    active = {
        field_key: process_id
        for field_key, process_id in store.registry.assignments().items()
        if store.registry.resolve(field_key) is not None
    }
    return jsonify({"active": active}), 200


@processes_bp.route("/processes/set-active", methods=["POST"])
def set_active_process():
    """Body: {governed_field_key, process_id | null}"""
    scope, err = _scope_required()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    field_key = data.get("governed_field_key")
    if not field_key:
        return api_error(E.VALIDATION_REQUIRED, "governed_field_key is required")

    store = svc.get_store(scope)
    store.set_active(field_key, data.get("process_id"))
    return jsonify({"governed_field_key": field_key, "process_id": data.get("process_id")}), 200


@processes_bp.route("/processes/enforcement", methods=["GET"])
def get_enforcement():
    """Global enforcement flag; the same value applies to every organization."""
    return jsonify({"enabled": svc.is_enforcement_enabled()}), 200


@processes_bp.route("/processes/enforcement", methods=["PUT"])
def set_enforcement():
    """Body: {enabled: bool}"""
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("enabled"), bool):
        return api_error(E.VALIDATION_REQUIRED, "enabled (bool) is required")
    actor = request.headers.get("X-User", "system")
    return jsonify({"enabled": svc.set_enforcement(data["enabled"], actor)}), 200


# ═════════════════════════════════════════════════════════════════════════
# Validation
# ═════════════════════════════════════════════════════════════════════════


def _validation_body() -> tuple[dict | None, tuple | None]:
    data = request.get_json(silent=True) or {}
    if not data.get("field_key"):
        return None, api_error(E.VALIDATION_REQUIRED, "field_key is required")
    record = data.get("record") or {}
    if not isinstance(record, dict):
        return None, api_error(E.VALIDATION_INVALID, "record must be an object")
    data["record"] = record
    return data, None


@processes_bp.route("/processes/validate", methods=["POST"])
def validate_change():
    """Decide whether a governed field may change.

    Body: {record, field_key, from_value, to_value}
    Returns: {ok, missing_fields, transition_blocked, message} (always 200).
    """
    scope, err = _scope_required()
    if err:
        return err
    data, err = _validation_body()
    if err:
        return err
    result = svc.can_change_field(
        scope,
        data["record"],
        data["field_key"],
        data.get("from_value"),
        data.get("to_value"),
    )
    return jsonify(result.to_dict()), 200


@processes_bp.route("/processes/available-transitions", methods=["POST"])
def available_transitions_route():
    """Body: {record, field_key, from_value} → {targets, exit}"""
    scope, err = _scope_required()
    if err:
        return err
    data, err = _validation_body()
    if err:
        return err
    payload = svc.available_transitions(
        scope, data["record"], data["field_key"], data.get("from_value"),
    )
    return jsonify(payload), 200
