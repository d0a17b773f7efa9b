"""
Transition validator — decides whether one proposed change of a governed
field is allowed.

Decision sequence (first match wins):
  1. from == to                     → allowed (no-op)
  2. enforcement flag off           → allowed
  3. no active Process for field    → allowed
  4. exit requirements of `from`    → denied with missing_fields
  5. non-empty whitelist lacks pair → denied with transition_blocked
  6. otherwise                      → allowed

Rule outcomes are returned as ``ValidationResult`` data, never raised.

Usage:
    validator = TransitionValidator(store.registry, schema, enforcement=lambda: True)
    result = validator.can_change_field(deal, "stage", "negotiation", "closing")
    if not result.ok:
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from dealflow.engine.completeness import is_filled
from dealflow.engine.registry import ActiveProcessRegistry
from dealflow.engine.types import (
    MissingField,
    ProcessDefinition,
    SchemaProvider,
    ValidationResult,
)

logger = logging.getLogger(__name__)


def validate_exit(
    process: ProcessDefinition,
    record: Mapping[str, Any],
    stage: str,
    schema: SchemaProvider,
) -> ValidationResult:
    """Check that ``record`` satisfies every exit requirement of ``stage``."""
    missing = []
    for key in sorted(process.required_for(stage)):
        if not is_filled(record.get(key), schema.field_type(key)):
            missing.append(MissingField(field_key=key, field_label=schema.field_label(key)))

    if not missing:
        return ValidationResult.allowed()

    from_label = schema.option_label(process.governed_field_key, stage)
    labels = ", ".join(f.field_label for f in missing)
    return ValidationResult.missing(
        missing, f'"{from_label}" cannot be exited; missing: {labels}',
    )


def validate_transition(
    process: ProcessDefinition,
    from_value: str,
    to_value: str,
    schema: SchemaProvider,
) -> ValidationResult:
    """Check ``(from_value, to_value)`` against the Process whitelist.

    An empty whitelist leaves movement unconstrained.
    """
    if not process.transitions or process.allows(from_value, to_value):
        return ValidationResult.allowed()

    field_key = process.governed_field_key
    from_label = schema.option_label(field_key, from_value)
    to_label = schema.option_label(field_key, to_value)
    return ValidationResult.blocked(f'transition "{from_label}" → "{to_label}" not permitted')


def evaluate_process(
    process: ProcessDefinition,
    record: Mapping[str, Any],
    from_value: str,
    to_value: str,
    schema: SchemaProvider,
) -> ValidationResult:
    """Run the exit-requirement check, then the whitelist check."""
    exit_result = validate_exit(process, record, from_value, schema)
    if not exit_result.ok:
        return exit_result
    return validate_transition(process, from_value, to_value, schema)


class TransitionValidator:
    """Single entry point for committing a change to a governed field.

    Args:
        registry: Source of the governing Process for a field.
        schema: Provides field types and labels for diagnostics.
        enforcement: Zero-argument callable returning the global enforcement
            flag. Called on every validation; never cached.
    """

    def __init__(
        self,
        registry: ActiveProcessRegistry,
        schema: SchemaProvider,
        enforcement: Callable[[], bool],
    ):
        self._registry = registry
        self._schema = schema
        self._enforcement = enforcement

    def can_change_field(
        self,
        record: Mapping[str, Any] | None,
        field_key: str,
        from_value: str | None,
        to_value: str | None,
    ) -> ValidationResult:
        if from_value == to_value:
            return ValidationResult.allowed()

        if not self._enforcement():
            logger.debug("Enforcement disabled, allowing %s change", field_key)
            return ValidationResult.allowed()

        process = self._registry.resolve(field_key)
        if process is None:
            return ValidationResult.allowed()

        result = evaluate_process(process, record or {}, from_value, to_value, self._schema)
        if not result.ok:
            logger.info(
                "Change of %s %r → %r denied by process=%s: %s",
                field_key, from_value, to_value, process.id, result.message,
            )
        return result
