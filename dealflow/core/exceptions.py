"""
Engine-wide exception hierarchy.

Services and the process store raise these types; blueprints register
handlers against them once and get consistent HTTP status codes.

Rule outcomes of the transition validator are NOT exceptions; they are
returned as ``ValidationResult`` data. The types below cover malformed
configuration requests and persistence failures only.

Usage:
    from dealflow.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Process", resource_id="3f2a...")
    raise ValidationError("stage_order contains duplicates", details={"stage_order": [...]})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Args:
        resource: Human-readable entity name (e.g. "Process", "FieldDefinition").
        resource_id: The key that was looked up.
        scope: Optional organization scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        scope: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.scope = scope
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if scope is not None:
            msg += f" (scope={scope})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a configuration request is well-formed but breaks a rule
    (e.g. governing a non-select field, duplicate stages).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique key.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PersistenceError(Exception):
    """Raised when the backing store rejects a create/update/delete/activate.

    Local optimistic state has already been rolled back when this propagates.
    Maps to HTTP 500.

    Args:
        operation: Store operation that failed (e.g. "update").
        cause: The underlying exception, kept for logging.
    """

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        msg = f"Persistence failure during {operation}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)
