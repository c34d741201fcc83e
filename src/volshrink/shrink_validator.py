"""Shrink request validation.

Decides, for a uniform shrink amount, whether every target can be resized.
Each target must stay at or above both its own minimum size and the
aggregate floor (the largest minimum among all queried targets). Every
violated rule is recorded; one rejected target makes the whole request
infeasible.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from volshrink.constraint_collector import aggregate_floor as compute_aggregate_floor
from volshrink.errors import VolshrinkError
from volshrink.input_parsing import format_size
from volshrink.models import ResourceConstraint

logger = logging.getLogger(__name__)

# Shrinks smaller than this are allowed but probably a unit mistake
MIN_GRANULARITY = 1024 * 1024


class RejectionReason(str, Enum):
    """Rule a planned resize violates."""

    NON_POSITIVE_DELTA = "non_positive_delta"
    BELOW_TARGET_FLOOR = "below_target_floor"
    BELOW_AGGREGATE_FLOOR = "below_aggregate_floor"
    NO_SIZE_CHANGE = "no_size_change"


@dataclass(frozen=True)
class ShrinkRequest:
    """Bytes to remove from every target's partition."""

    delta: int


@dataclass(frozen=True)
class PlannedResize:
    """Size a target would be resized to."""

    target: str
    current_size: int
    target_size: int


@dataclass(frozen=True)
class Rejection:
    """One violated rule for one target."""

    target: str
    reason: RejectionReason
    message: str


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a shrink request against all targets."""

    request: ShrinkRequest
    aggregate_floor: int
    plans: tuple[PlannedResize, ...]
    rejections: tuple[Rejection, ...] = ()
    advisories: tuple[str, ...] = field(default=())

    @property
    def feasible(self) -> bool:
        return not self.rejections

    @property
    def rejected_targets(self) -> list[str]:
        """Names of rejected targets, without duplicates, in target order."""
        names: list[str] = []
        for rejection in self.rejections:
            if rejection.target not in names:
                names.append(rejection.target)
        return names

    def plan_for(self, target: str) -> PlannedResize:
        for plan in self.plans:
            if plan.target == target:
                return plan
        raise KeyError(target)

    def raise_if_infeasible(self) -> None:
        """Raise ValidationFailedError if any target was rejected."""
        if not self.feasible:
            raise ValidationFailedError(self)


class ValidationFailedError(VolshrinkError):
    """Raised when a shrink request is rejected for at least one target."""

    def __init__(self, result: ValidationResult):
        self.result = result
        super().__init__(
            f"Shrink rejected for {len(result.rejected_targets)} target(s): "
            f"{', '.join(result.rejected_targets)}"
        )


class ShrinkValidator:
    """Validate a shrink request against collected constraints."""

    def __init__(self, min_granularity: int = MIN_GRANULARITY):
        self.min_granularity = min_granularity

    def validate(
        self,
        constraints: dict[str, ResourceConstraint],
        request: ShrinkRequest,
        aggregate_floor: int | None = None,
    ) -> ValidationResult:
        """Validate request for every target.

        Args:
            constraints: Successful constraints keyed by target name
            request: Shrink request
            aggregate_floor: Shared floor; computed from constraints if omitted

        Returns:
            ValidationResult with one plan per target and all rejections

        Raises:
            ValueError: If constraints is empty
        """
        if not constraints:
            raise ValueError("At least one constraint is required")

        floor = (
            compute_aggregate_floor(list(constraints.values()))
            if aggregate_floor is None
            else aggregate_floor
        )
        delta = request.delta

        advisories: list[str] = []
        if 0 < delta < self.min_granularity:
            advisories.append(
                f"Shrink amount {format_size(delta)} is below {format_size(self.min_granularity)}; "
                "check the unit"
            )

        plans: list[PlannedResize] = []
        rejections: list[Rejection] = []

        for name, constraint in constraints.items():
            target_size = constraint.current_size - delta
            plans.append(
                PlannedResize(target=name, current_size=constraint.current_size, target_size=target_size)
            )

            if delta <= 0:
                rejections.append(
                    Rejection(
                        name,
                        RejectionReason.NON_POSITIVE_DELTA,
                        f"shrink amount must be positive (got {format_size(delta)})",
                    )
                )
            if target_size < constraint.minimum_size:
                rejections.append(
                    Rejection(
                        name,
                        RejectionReason.BELOW_TARGET_FLOOR,
                        f"target size {format_size(target_size)} is below this host's "
                        f"minimum {format_size(constraint.minimum_size)}",
                    )
                )
            if target_size < floor:
                rejections.append(
                    Rejection(
                        name,
                        RejectionReason.BELOW_AGGREGATE_FLOOR,
                        f"target size {format_size(target_size)} is below the fleet "
                        f"floor {format_size(floor)}",
                    )
                )
            if target_size >= constraint.current_size:
                rejections.append(
                    Rejection(
                        name,
                        RejectionReason.NO_SIZE_CHANGE,
                        "target size is not smaller than the current size",
                    )
                )

        result = ValidationResult(
            request=request,
            aggregate_floor=floor,
            plans=tuple(plans),
            rejections=tuple(rejections),
            advisories=tuple(advisories),
        )
        for advisory in advisories:
            logger.debug(advisory)
        logger.debug(
            f"Validated shrink of {delta} bytes against {len(plans)} target(s): "
            f"{'feasible' if result.feasible else 'infeasible'}"
        )
        return result


__all__ = [
    "MIN_GRANULARITY",
    "PlannedResize",
    "Rejection",
    "RejectionReason",
    "ShrinkRequest",
    "ShrinkValidator",
    "ValidationFailedError",
    "ValidationResult",
]
