"""
Volshrink Data Models

Shared dataclasses and enums used across collector, validator and rollout.

Philosophy:
- Zero dependencies on other volshrink modules
- Self-contained data definitions
- Shared types used across multiple modules
"""

from .target_models import ErrorKind, ResourceConstraint, Target, TargetState

__all__ = ["ErrorKind", "ResourceConstraint", "Target", "TargetState"]
