"""
Target Data Models

Hosts under management and the size constraints reported for them.

Philosophy:
- Single responsibility: Target data structures only
- Zero dependencies: No imports from other volshrink modules
- Immutable: state changes produce new values
"""

from dataclasses import dataclass, replace
from enum import Enum

LOCAL_ALIASES = frozenset({"localhost", "local", "."})


class TargetState(str, Enum):
    """Reachability of a target as last observed."""

    UNKNOWN = "unknown"
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"


class ErrorKind(str, Enum):
    """Category of a per-target failure."""

    TARGET_UNREACHABLE = "target_unreachable"
    AUTHENTICATION_FAILED = "authentication_failed"
    RESOURCE_NOT_FOUND = "resource_not_found"
    QUERY_FAILED = "query_failed"
    MUTATION_FAILED = "mutation_failed"

    @property
    def label(self) -> str:
        """Human readable label."""
        return self.value.replace("_", " ")


@dataclass(frozen=True)
class Target:
    """One managed host.

    Attributes:
        name: Host name, address, or a local alias
        state: Reachability as last observed
        error: Reason the target was marked unreachable, if any
    """

    name: str
    state: TargetState = TargetState.UNKNOWN
    error: str | None = None

    @property
    def is_local(self) -> bool:
        """True when the target refers to the machine volshrink runs on."""
        return self.name.lower() in LOCAL_ALIASES

    def mark_reachable(self) -> "Target":
        return replace(self, state=TargetState.REACHABLE, error=None)

    def mark_unreachable(self, reason: str) -> "Target":
        return replace(self, state=TargetState.UNREACHABLE, error=reason)


@dataclass(frozen=True)
class ResourceConstraint:
    """Partition size snapshot for one target, in bytes.

    Attributes:
        current_size: Current partition size
        minimum_size: Smallest size the OS will accept for a resize
        maximum_size: Largest supported size (informational)
    """

    current_size: int
    minimum_size: int
    maximum_size: int | None = None

    def __post_init__(self) -> None:
        if self.current_size < 0 or self.minimum_size < 0:
            raise ValueError("Partition sizes cannot be negative")
        if self.minimum_size > self.current_size:
            raise ValueError(
                f"Minimum size {self.minimum_size} exceeds current size {self.current_size}"
            )

    @property
    def reclaimable(self) -> int:
        """Bytes that could be removed while respecting this target's own floor."""
        return self.current_size - self.minimum_size


__all__ = ["LOCAL_ALIASES", "ErrorKind", "ResourceConstraint", "Target", "TargetState"]
