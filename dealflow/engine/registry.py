"""
Active process registry — which Process, if any, governs each field.

The registry owns the field → process-id mapping and reads Process snapshots
through a lookup callable supplied by its owner (normally ``ProcessStore``).
``resolve`` is the only way the rest of the engine learns whether a field is
governed right now.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping

from dealflow.engine.types import ProcessDefinition

logger = logging.getLogger(__name__)

ProcessLookup = Callable[[str], "ProcessDefinition | None"]


class ActiveProcessRegistry:
    """Field key → active Process id, with defensive resolution."""

    def __init__(self, lookup: ProcessLookup, assignments: Mapping[str, str] | None = None):
        self._lookup = lookup
        self._assignments: dict[str, str] = dict(assignments or {})

    def set_active(self, field_key: str, process_id: str | None) -> None:
        """Overwrite the mapping for ``field_key``; ``None`` removes it."""
        if process_id is None:
            self._assignments.pop(field_key, None)
        else:
            self._assignments[field_key] = process_id
        logger.debug("Active process for field=%s set to %s", field_key, process_id)

    def resolve(self, field_key: str) -> ProcessDefinition | None:
        """Return the governing Process only if it exists and is enabled."""
        process_id = self._assignments.get(field_key)
        if process_id is None:
            return None
        process = self._lookup(process_id)
        if process is None or not process.enabled:
            return None
        return process

    def active_process_id(self, field_key: str) -> str | None:
        """Raw mapping for ``field_key`` (may reference a disabled Process)."""
        return self._assignments.get(field_key)

    def is_active(self, process_id: str) -> bool:
        for field_key, pid in self._assignments.items():
            if pid == process_id:
                return self.resolve(field_key) is not None
        return False

    def clear_for_process(self, process_id: str) -> list[str]:
        """Drop every assignment that points at ``process_id``; return the cleared fields."""
        cleared = [k for k, pid in self._assignments.items() if pid == process_id]
        for field_key in cleared:
            del self._assignments[field_key]
        return cleared

    def assignments(self) -> dict[str, str]:
        return dict(self._assignments)

    def restore(self, assignments: Mapping[str, str]) -> None:
        """Replace the whole mapping (used to roll back a failed mutation)."""
        self._assignments = dict(assignments)
