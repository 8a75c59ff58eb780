"""Compliance arithmetic for batch QA progress.

Pure functions over already-loaded rows; nothing here touches the database.
Checkpoints are any objects with ``id``, ``code``, ``name``, ``stage``,
``required`` and ``display_order``; checks are any objects with
``checkpoint_id`` and ``status``; ingredients are any objects with
``target_amount``, ``actual_amount`` and ``tolerance_percentage``. ORM
instances are the usual callers, so are plain namespaces in tests.

A checkpoint without a recorded check is pending. Progress is always
recomputed from checkpoints and checks, never stored.

Usage:
    from src.services import compliance

    progresses = compliance.all_stage_progress(checkpoints, checks)
    stage = compliance.current_stage(progresses)
    if compliance.can_complete(progresses):
        ...
"""

import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Optional, Sequence

from src.models.enums import CheckStatus
from src.utils.constants import FINAL_STAGE, STAGE_ORDER


@dataclass
class StageProgress:
    """Required-checkpoint progress of one stage.

    Attributes:
        stage: Stage name
        total_required: Number of required checkpoints in the stage
        completed_required: How many of them have a passed check
        percentage: round(100 * completed / total), 100 for an empty stage
    """

    stage: str
    total_required: int
    completed_required: int
    percentage: int

    @property
    def is_complete(self) -> bool:
        return self.completed_required >= self.total_required

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def round_percent(value: float) -> int:
    """Round a percentage half up (12.5 -> 13), as shown to operators."""
    return int(math.floor(value + 0.5))


def is_in_tolerance(
    target: float, actual: Optional[float], tolerance_percentage: float
) -> Optional[bool]:
    """
    Check whether a measured amount is within tolerance of its target.

    Args:
        target: Target amount
        actual: Measured amount, or None when not yet measured
        tolerance_percentage: Allowed relative deviation, in percent

    Returns:
        None when unmeasured; otherwise whether |actual - target| / target
        <= tolerance / 100. A zero target only accepts an exact zero.
    """
    if actual is None:
        return None
    if target == 0:
        return actual == 0
    return abs(actual - target) / abs(target) <= tolerance_percentage / 100.0


def tolerance_compliance_percent(ingredients: Iterable[Any]) -> int:
    """
    Percentage of measured ingredients within tolerance.

    Unmeasured ingredients are excluded from numerator and denominator.

    Returns:
        round(100 * in_tolerance / measured), or 0 when nothing is measured
    """
    measured = 0
    in_tolerance = 0
    for ingredient in ingredients:
        result = is_in_tolerance(
            ingredient.target_amount,
            ingredient.actual_amount,
            ingredient.tolerance_percentage,
        )
        if result is None:
            continue
        measured += 1
        if result:
            in_tolerance += 1
    if measured == 0:
        return 0
    return round_percent(100.0 * in_tolerance / measured)


def check_status_map(checks: Iterable[Any]) -> Dict[int, str]:
    """Map checkpoint id to the recorded status of its check."""
    return {check.checkpoint_id: _status_value(check.status) for check in checks}


def _status_value(status: Any) -> str:
    return status.value if isinstance(status, CheckStatus) else status


def _status_of(checkpoint: Any, statuses: Dict[int, str]) -> str:
    return statuses.get(checkpoint.id, CheckStatus.PENDING.value)


def _in_stage(checkpoints: Iterable[Any], stage: str) -> List[Any]:
    return sorted(
        (cp for cp in checkpoints if cp.stage == stage),
        key=lambda cp: (cp.display_order or 0, cp.id or 0),
    )


def stage_progress(checkpoints: Iterable[Any], checks: Iterable[Any], stage: str) -> StageProgress:
    """
    Compute required-checkpoint progress for one stage.

    Args:
        checkpoints: Checkpoints to consider (callers pass active ones)
        checks: The batch's recorded checks
        stage: Stage name

    Returns:
        StageProgress; percentage is 100 when the stage has no required checkpoints
    """
    statuses = check_status_map(checks)
    required = [cp for cp in _in_stage(checkpoints, stage) if cp.required]
    passed = sum(
        1 for cp in required if _status_of(cp, statuses) == CheckStatus.PASSED.value
    )
    total = len(required)
    percentage = 100 if total == 0 else round_percent(100.0 * passed / total)
    return StageProgress(
        stage=stage, total_required=total, completed_required=passed, percentage=percentage
    )


def all_stage_progress(checkpoints: Iterable[Any], checks: Iterable[Any]) -> List[StageProgress]:
    """Progress of every stage, in production order."""
    checkpoints = list(checkpoints)
    checks = list(checks)
    return [stage_progress(checkpoints, checks, stage) for stage in STAGE_ORDER]


def current_stage(progresses: Sequence[StageProgress]) -> str:
    """First stage with outstanding required checkpoints, else 'final'."""
    by_stage = {progress.stage: progress for progress in progresses}
    for stage in STAGE_ORDER:
        progress = by_stage.get(stage)
        if progress is not None and not progress.is_complete:
            return stage
    return FINAL_STAGE


def current_checkpoint(
    stage: str, checkpoints: Iterable[Any], checks: Iterable[Any]
) -> Optional[Any]:
    """
    Next checkpoint to work on within a stage.

    Returns:
        The first required checkpoint (by display order) not passed; failing
        that the first optional one not passed; None when the stage is clear.
    """
    statuses = check_status_map(checks)
    ordered = _in_stage(checkpoints, stage)
    for wanted_required in (True, False):
        for cp in ordered:
            if bool(cp.required) is not wanted_required:
                continue
            if _status_of(cp, statuses) != CheckStatus.PASSED.value:
                return cp
    return None


def can_complete(progresses: Sequence[StageProgress]) -> bool:
    """True iff every stage has all its required checkpoints passed."""
    return all(progress.is_complete for progress in progresses)


def overall_percent(progresses: Sequence[StageProgress]) -> int:
    """round(100 * total completed / total required), 100 when nothing is required."""
    total = sum(progress.total_required for progress in progresses)
    completed = sum(progress.completed_required for progress in progresses)
    if total == 0:
        return 100
    return round_percent(100.0 * completed / total)


def pending_required(checkpoints: Iterable[Any], checks: Iterable[Any]) -> List[Any]:
    """Required checkpoints without a passed check, in stage and display order."""
    statuses = check_status_map(checks)
    checkpoints = list(checkpoints)
    pending = []
    for stage in STAGE_ORDER:
        for cp in _in_stage(checkpoints, stage):
            if cp.required and _status_of(cp, statuses) != CheckStatus.PASSED.value:
                pending.append(cp)
    return pending
