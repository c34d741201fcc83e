"""Constraint collection across targets.

This module queries every target for the current and minimum size of a
partition before anything is validated or changed:
- One outcome per target, in input order
- Per-target failures are recorded, never raised
- Optional bounded parallelism (read-only, safe to run concurrently)

Only when no target answers at all does collection fail as a whole.
"""

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from volshrink.errors import VolshrinkError
from volshrink.models import ErrorKind, ResourceConstraint, Target
from volshrink.partition_ops import PartitionClient
from volshrink.remote_exec import Credentials, RemoteExecError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectionOutcome:
    """Result of querying a single target.

    Exactly one of constraint or (error_kind, error) is set.
    """

    target: Target
    constraint: ResourceConstraint | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.constraint is not None

    @classmethod
    def success(cls, target: Target, constraint: ResourceConstraint) -> "CollectionOutcome":
        return cls(target=target.mark_reachable(), constraint=constraint)

    @classmethod
    def failure(cls, target: Target, kind: ErrorKind, message: str) -> "CollectionOutcome":
        # Unreachable only when the transport failed; a missing drive means the host answered
        if kind in (ErrorKind.TARGET_UNREACHABLE, ErrorKind.AUTHENTICATION_FAILED):
            target = target.mark_unreachable(message)
        else:
            target = target.mark_reachable()
        return cls(target=target, error_kind=kind, error=message)


class CollectionResult:
    """Ordered outcomes of one collection run."""

    def __init__(self, outcomes: list[CollectionOutcome]):
        self.outcomes = outcomes

    @property
    def successes(self) -> list[CollectionOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def errors(self) -> list[CollectionOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def constraints(self) -> dict[str, ResourceConstraint]:
        """Successful constraints keyed by target name, in input order."""
        return {o.target.name: o.constraint for o in self.outcomes if o.constraint is not None}

    @property
    def aggregate_floor(self) -> int:
        """Largest minimum size among successfully queried targets."""
        return aggregate_floor(list(self.constraints.values()))

    def format_summary(self) -> str:
        return (
            f"Queried: {len(self.outcomes)}, "
            f"Succeeded: {len(self.successes)}, Failed: {len(self.errors)}"
        )


class NoValidTargetsError(VolshrinkError):
    """Raised when no target could be queried successfully."""

    def __init__(self, result: CollectionResult):
        self.result = result
        super().__init__(f"None of the {len(result.outcomes)} target(s) returned constraints")


def aggregate_floor(constraints: list[ResourceConstraint]) -> int:
    """Return the strictest (largest) minimum size among constraints.

    Raises:
        ValueError: If constraints is empty
    """
    if not constraints:
        raise ValueError("Cannot compute an aggregate floor without constraints")
    return max(c.minimum_size for c in constraints)


class ConstraintCollector:
    """Query every target for partition size constraints."""

    def __init__(self, client: PartitionClient | None = None, max_workers: int = 4):
        """Initialize constraint collector.

        Args:
            client: Partition client used for the queries
            max_workers: Maximum number of concurrent queries (1 = sequential)
        """
        self.client = client or PartitionClient()
        self.max_workers = max(1, max_workers)

    def collect(
        self,
        targets: list[Target],
        drive: str,
        credentials: Credentials,
        progress_callback: Callable[[str], None] | None = None,
    ) -> CollectionResult:
        """Collect constraints from every target.

        Args:
            targets: Non-empty ordered list of targets
            drive: Drive letter of the partition
            credentials: Credentials shared by all targets
            progress_callback: Optional progress callback

        Returns:
            CollectionResult with one outcome per target, in input order

        Raises:
            ValueError: If targets is empty
            NoValidTargetsError: If every target failed
        """
        if not targets:
            raise ValueError("At least one target is required")

        def query_target(target: Target) -> CollectionOutcome:
            """Query a single target; never raises."""
            if progress_callback:
                progress_callback(f"Querying {target.name}...")

            try:
                constraint = self.client.query(credentials.for_host(target.name), drive)
            except RemoteExecError as e:
                logger.debug(f"Query failed on {target.name}: {e.message}")
                if progress_callback:
                    progress_callback(f"✗ {target.name}: {e.kind.label}: {e.message}")
                return CollectionOutcome.failure(target, e.kind, e.message)
            except Exception as e:
                logger.warning(f"Unexpected error querying {target.name}: {e}")
                if progress_callback:
                    progress_callback(f"✗ {target.name}: {e!s}")
                return CollectionOutcome.failure(target, ErrorKind.QUERY_FAILED, str(e))

            if progress_callback:
                progress_callback(f"✓ {target.name}: constraints received")
            return CollectionOutcome.success(target, constraint)

        if self.max_workers == 1 or len(targets) == 1:
            outcomes = [query_target(t) for t in targets]
        else:
            workers = min(self.max_workers, len(targets))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                # map() yields results in submission order
                outcomes = list(executor.map(query_target, targets))

        result = CollectionResult(outcomes)
        logger.debug(result.format_summary())

        if not result.successes:
            raise NoValidTargetsError(result)

        return result


__all__ = [
    "CollectionOutcome",
    "CollectionResult",
    "ConstraintCollector",
    "NoValidTargetsError",
    "aggregate_floor",
]
