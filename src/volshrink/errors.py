"""Exception hierarchy shared by all volshrink modules.

Module-specific errors (remote execution, partition operations, collection,
validation, configuration) derive from VolshrinkError so the CLI can catch
a single base class at its boundary.
"""


class VolshrinkError(Exception):
    """Base class for all volshrink errors."""

    pass


class InputInvalidError(VolshrinkError):
    """Raised when a user-supplied field cannot be parsed.

    Recoverable: the session loop re-prompts for the offending field.
    """

    pass


__all__ = ["InputInvalidError", "VolshrinkError"]
