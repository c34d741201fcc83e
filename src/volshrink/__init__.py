"""volshrink - shrink a partition across a fleet of Windows hosts

Philosophy:
- Ruthless simplicity
- Brick architecture (self-contained modules)
- Validate everything before touching anything
- Fail per target, never silently

volshrink collects partition size constraints from every target, validates a
uniform shrink amount against each host's floor and the fleet-wide floor, and
applies the resize one host at a time after an explicit confirmation.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
