"""
Stage reconciler — merges a Process's saved stage order with the live
options of its governed field.

  current   option saved in stage_order and still in the schema
  new       option in the schema that the Process has never ordered
  obsolete  saved value whose option was removed from the schema

Saved entries keep their stage_order position (obsolete ones included, so
historical record values stay displayable); new options follow in the
schema's own order.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from dealflow.engine.types import ReconciledStage, StageOption, StageStatus


def reconcile(
    stage_order: Sequence[str],
    live_options: Iterable[StageOption],
) -> list[ReconciledStage]:
    """Return status-tagged stages for ``stage_order`` against ``live_options``.

    Deterministic: the same inputs always produce the same list, and
    duplicate values in either input are emitted once.
    """
    live = list(live_options)
    by_value: dict[str, StageOption] = {}
    for opt in live:
        by_value.setdefault(opt.value, opt)

    result: list[ReconciledStage] = []
    seen: set[str] = set()

    for value in stage_order:
        if value in seen:
            continue
        seen.add(value)
        opt = by_value.get(value)
        if opt is not None:
            result.append(ReconciledStage(opt.value, opt.label, opt.color, StageStatus.CURRENT))
        else:
            result.append(ReconciledStage(value, value, None, StageStatus.OBSOLETE))

    for opt in live:
        if opt.value in seen:
            continue
        seen.add(opt.value)
        result.append(ReconciledStage(opt.value, opt.label, opt.color, StageStatus.NEW))

    return result


def pickable_stages(stages: Iterable[ReconciledStage]) -> list[ReconciledStage]:
    """Stages offered when defining new transitions or requirements."""
    return [s for s in stages if s.status is not StageStatus.OBSOLETE]


def option_status(
    value: str,
    stage_order: Sequence[str],
    live_options: Iterable[StageOption],
) -> str:
    """Editor badge for one option: configured | not_configured | obsolete."""
    if not any(opt.value == value for opt in live_options):
        return "obsolete"
    if value in stage_order:
        return "configured"
    return "not_configured"
