"""
Record schema API.

Blueprint: schema_bp
Prefix: /api/v1

Endpoints:
  Field Definitions:
    GET/POST        /schema/<entity_type>/fields              -- List/create definitions
    GET/PUT/DELETE  /schema/fields/<fid>                      -- Single definition CRUD

  Process configuration helpers:
    GET             /schema/<entity_type>/select-fields       -- Fields a process may govern
    GET             /schema/<entity_type>/requirement-fields  -- Fields a stage may require
"""

import logging

from flask import Blueprint, jsonify, request

from dealflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from dealflow.services.schema_service import (
    create_field_definition,
    delete_field_definition,
    get_field_definition,
    list_field_definitions,
    list_requirement_fields,
    list_select_fields,
    update_field_definition,
)
from dealflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

schema_bp = Blueprint("schema", __name__, url_prefix="/api/v1")


def _pagination_args(default_limit: int = 200) -> tuple[int, int]:
    """Parse limit/offset pagination query parameters from the current request."""
    try:
        limit = min(int(request.args.get("limit", default_limit)), 1000)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


@schema_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, f"{error.resource} not found")


@schema_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_DUPLICATE, str(error))


@schema_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), status=422, details=error.details)


# ------------------------------------------------------------------
#  Field Definitions
# ------------------------------------------------------------------

@schema_bp.route("/schema/<entity_type>/fields", methods=["GET"])
def list_field_definitions_route(entity_type):
    """List the field definitions of a record table."""
    limit, offset = _pagination_args()
    fields, total = list_field_definitions(entity_type, limit=limit, offset=offset)
    return jsonify({"fields": fields, "total": total}), 200


@schema_bp.route("/schema/<entity_type>/fields", methods=["POST"])
def create_field_definition_route(entity_type):
    """Create a field definition on a record table."""
    data = request.get_json(silent=True) or {}
    field_key = data.get("field_key", "")
    if not field_key or len(field_key) > 100:
        return api_error(E.VALIDATION_REQUIRED, "field_key is required and must be <= 100 chars")

    field = create_field_definition(entity_type, data)
    return jsonify({"field": field}), 201


@schema_bp.route("/schema/fields/<int:fid>", methods=["GET"])
def get_field_definition_route(fid):
    return jsonify({"field": get_field_definition(fid)}), 200


@schema_bp.route("/schema/fields/<int:fid>", methods=["PUT"])
def update_field_definition_route(fid):
    """Partial update; editing ``options`` adds or removes stages."""
    data = request.get_json(silent=True) or {}
    return jsonify({"field": update_field_definition(fid, data)}), 200


@schema_bp.route("/schema/fields/<int:fid>", methods=["DELETE"])
def delete_field_definition_route(fid):
    delete_field_definition(fid)
    return jsonify({"deleted": True}), 200


# ------------------------------------------------------------------
#  Process configuration helpers
# ------------------------------------------------------------------

@schema_bp.route("/schema/<entity_type>/select-fields", methods=["GET"])
def list_select_fields_route(entity_type):
    return jsonify({"fields": list_select_fields(entity_type)}), 200


@schema_bp.route("/schema/<entity_type>/requirement-fields", methods=["GET"])
def list_requirement_fields_route(entity_type):
    return jsonify({"fields": list_requirement_fields(entity_type)}), 200
