"""Sequential rollout of a validated shrink.

Resizes targets one at a time, in order, each to its own planned size.
A failure on one target is recorded and the rollout moves on; there is no
rollback of targets already resized.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from volshrink.input_parsing import format_size
from volshrink.models import ErrorKind
from volshrink.partition_ops import PartitionClient
from volshrink.remote_exec import Credentials, RemoteExecError
from volshrink.shrink_validator import PlannedResize, ValidationFailedError, ValidationResult

logger = logging.getLogger(__name__)


@dataclass
class RolloutResult:
    """Result of resizing a single target."""

    target: str
    success: bool
    message: str
    resulting_size: int | None = None
    error_kind: ErrorKind | None = None
    duration: float = 0.0


class RolloutReport:
    """Aggregated results from a rollout."""

    def __init__(self, results: list[RolloutResult]):
        self.results = results

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def all_succeeded(self) -> bool:
        return all(r.success for r in self.results) if self.results else True

    def get_failures(self) -> list[RolloutResult]:
        return [r for r in self.results if not r.success]

    def get_successes(self) -> list[RolloutResult]:
        return [r for r in self.results if r.success]

    def format_summary(self) -> str:
        return f"Total: {self.total}, Succeeded: {self.succeeded}, Failed: {self.failed}"


class RolloutExecutor:
    """Apply planned resizes strictly sequentially."""

    def __init__(self, client: PartitionClient | None = None):
        self.client = client or PartitionClient()

    def execute(
        self,
        validation: ValidationResult,
        drive: str,
        credentials: Credentials,
        progress_callback: Callable[[str], None] | None = None,
    ) -> RolloutReport:
        """Resize every planned target, one after another.

        Args:
            validation: Feasible validation result holding the plans
            drive: Drive letter of the partition
            credentials: Credentials shared by all targets
            progress_callback: Optional progress callback

        Returns:
            RolloutReport with one result per plan, in plan order

        Raises:
            ValidationFailedError: If validation is not feasible
        """
        validation.raise_if_infeasible()

        results = [
            self._resize_target(plan, drive, credentials, progress_callback)
            for plan in validation.plans
        ]
        report = RolloutReport(results)
        logger.debug(f"Rollout finished: {report.format_summary()}")
        return report

    def _resize_target(
        self,
        plan: PlannedResize,
        drive: str,
        credentials: Credentials,
        progress_callback: Callable[[str], None] | None,
    ) -> RolloutResult:
        """Resize a single target; never raises."""
        start_time = time.time()

        if progress_callback:
            progress_callback(f"Resizing {plan.target} to {format_size(plan.target_size)}...")

        try:
            resulting_size = self.client.resize(
                credentials.for_host(plan.target), drive, plan.target_size
            )
        except RemoteExecError as e:
            duration = time.time() - start_time
            logger.debug(f"Resize failed on {plan.target}: {e.message}")
            if progress_callback:
                progress_callback(f"✗ {plan.target}: {e.kind.label}: {e.message}")
            return RolloutResult(
                target=plan.target,
                success=False,
                message=e.message,
                error_kind=e.kind,
                duration=duration,
            )
        except Exception as e:
            duration = time.time() - start_time
            logger.warning(f"Unexpected error resizing {plan.target}: {e}")
            if progress_callback:
                progress_callback(f"✗ {plan.target}: {e!s}")
            return RolloutResult(
                target=plan.target,
                success=False,
                message=str(e),
                error_kind=ErrorKind.MUTATION_FAILED,
                duration=duration,
            )

        duration = time.time() - start_time
        message = f"resized to {format_size(resulting_size)}"
        if resulting_size != plan.target_size:
            message += f" (requested {format_size(plan.target_size)})"

        if progress_callback:
            progress_callback(f"✓ {plan.target}: {message}")

        return RolloutResult(
            target=plan.target,
            success=True,
            message=message,
            resulting_size=resulting_size,
            duration=duration,
        )


__all__ = ["RolloutExecutor", "RolloutReport", "RolloutResult", "ValidationFailedError"]
