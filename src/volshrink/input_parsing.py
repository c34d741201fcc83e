"""Parse-or-reject functions for interactive input.

Each function takes the raw text a user typed and either returns a typed
value or raises InputInvalidError with a message suitable for re-prompting.
"""

import ipaddress
import re
from decimal import Decimal, localcontext
from pathlib import Path

from volshrink.errors import InputInvalidError
from volshrink.models.target_models import LOCAL_ALIASES

MAX_TARGETS = 256

# Partition sizes are Int64 byte counts in the Storage cmdlets
MAX_SIZE_BYTES = 2**63 - 1

SIZE_UNITS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024**2,
    "GB": 1024**3,
    "TB": 1024**4,
}

_SIZE_PATTERN = re.compile(r"^([+-]?\d+(?:\.\d+)?)\s*([KMGT]?B)?$", re.IGNORECASE)
_HOSTNAME_PATTERN = re.compile(
    r"^(?=.{1,253}$)([A-Za-z0-9]([A-Za-z0-9\-]{0,61}[A-Za-z0-9])?)(\.[A-Za-z0-9]([A-Za-z0-9\-]{0,61}[A-Za-z0-9])?)*$"
)
_USER_PATTERN = re.compile(r"^[A-Za-z0-9._\\-]+$")


def parse_size(text: str, default_unit: str = "MB") -> int:
    """Parse a size such as '15000', '15000MB', '1.5 GB' into bytes.

    Units are binary (1 MB = 1024 * 1024 bytes), matching PowerShell.
    A bare number uses default_unit. Zero and negative values are returned
    as-is; rejecting them is the validator's job. Arithmetic is exact: a
    value that does not come out to a whole number of bytes is rejected.

    Raises:
        InputInvalidError: If the text is not a number with an optional unit,
            is larger than MAX_SIZE_BYTES, or is a fractional number of bytes
    """
    match = _SIZE_PATTERN.match((text or "").strip())
    if not match:
        raise InputInvalidError(
            f"Invalid size: '{text}'. Expected a number with optional unit (B, KB, MB, GB, TB)"
        )

    number, unit = match.groups()
    multiplier = SIZE_UNITS[(unit or default_unit).upper()]

    whole_digits = number.lstrip("+-").split(".")[0].lstrip("0")
    if len(whole_digits) > len(str(MAX_SIZE_BYTES)):
        raise InputInvalidError(f"Invalid size: '{text}'. Value is too large")

    with localcontext() as ctx:
        ctx.prec = len(number) + len(str(multiplier))
        size = Decimal(number) * multiplier
        too_large = abs(size) > MAX_SIZE_BYTES
        fractional = size != size.to_integral_value()

    if too_large:
        raise InputInvalidError(f"Invalid size: '{text}'. Value is too large")
    if fractional:
        raise InputInvalidError(
            f"Invalid size: '{text}' is not a whole number of bytes. Use a smaller unit"
        )
    return int(size)


def format_size(size: int) -> str:
    """Format a byte count using the largest binary unit that keeps it >= 1."""
    sign = "-" if size < 0 else ""
    value = abs(size)
    for unit in ("TB", "GB", "MB", "KB"):
        if value >= SIZE_UNITS[unit]:
            return f"{sign}{value / SIZE_UNITS[unit]:,.2f} {unit}"
    return f"{sign}{value} B"


def parse_target_count(text: str) -> int:
    """Parse the number of targets (1..MAX_TARGETS).

    Raises:
        InputInvalidError: If not an integer in range
    """
    try:
        count = int((text or "").strip())
    except ValueError as e:
        raise InputInvalidError(f"Invalid target count: '{text}'. Expected a whole number") from e

    if count < 1 or count > MAX_TARGETS:
        raise InputInvalidError(f"Target count must be between 1 and {MAX_TARGETS}")
    return count


def parse_target_name(text: str) -> str:
    """Parse a host name, IP address, or local alias.

    Raises:
        InputInvalidError: If the value is not a valid host identifier
    """
    name = (text or "").strip()
    if not name:
        raise InputInvalidError("Target name cannot be empty")

    if name.lower() in LOCAL_ALIASES:
        return name.lower()

    try:
        ipaddress.ip_address(name)
        return name
    except ValueError:
        pass

    if not _HOSTNAME_PATTERN.match(name):
        raise InputInvalidError(f"Invalid target name: '{name}'")
    return name


def parse_target_list(text: str) -> list[str]:
    """Parse a comma or whitespace separated list of targets.

    Duplicates (case-insensitive) are rejected: the same host must never be
    resized twice in one rollout.

    Raises:
        InputInvalidError: If any name is invalid, the list is empty or has duplicates
    """
    raw = [part for part in re.split(r"[,\s]+", text or "") if part]
    if not raw:
        raise InputInvalidError("At least one target is required")
    if len(raw) > MAX_TARGETS:
        raise InputInvalidError(f"At most {MAX_TARGETS} targets are supported")

    names = [parse_target_name(part) for part in raw]
    ensure_unique_targets(names)
    return names


def _host_identity(name: str) -> str:
    """Key under which two target names refer to the same host."""
    lowered = name.lower()
    if lowered in LOCAL_ALIASES:
        return "localhost"
    try:
        address = ipaddress.ip_address(lowered)
    except ValueError:
        return lowered
    return "localhost" if address.is_loopback else str(address)


def ensure_unique_targets(names: list[str]) -> None:
    """Reject a target list naming the same host twice.

    Local aliases and loopback addresses all name the local machine.

    Raises:
        InputInvalidError: On the first duplicate found
    """
    seen: set[str] = set()
    for name in names:
        key = _host_identity(name)
        if key in seen:
            raise InputInvalidError(f"Duplicate target: '{name}'")
        seen.add(key)


def parse_drive_letter(text: str) -> str:
    """Parse a drive letter ('d', 'D', 'D:', 'D:\\') into 'D'.

    Raises:
        InputInvalidError: If not a single letter A-Z
    """
    value = (text or "").strip().rstrip("\\/").rstrip(":")
    if len(value) != 1 or not value.isascii() or not value.isalpha():
        raise InputInvalidError(f"Invalid drive letter: '{text}'. Expected a single letter A-Z")
    return value.upper()


def parse_user(text: str) -> str:
    """Parse a remote user name (optionally DOMAIN\\user).

    Raises:
        InputInvalidError: If empty or containing unsupported characters
    """
    user = (text or "").strip()
    if not user:
        raise InputInvalidError("User name cannot be empty")
    if not _USER_PATTERN.match(user):
        raise InputInvalidError(f"Invalid user name: '{user}'")
    return user


def parse_key_path(text: str) -> Path | None:
    """Parse an SSH private key path; empty input means the ssh default.

    Raises:
        InputInvalidError: If a path is given but does not point to a file
    """
    value = (text or "").strip()
    if not value:
        return None

    path = Path(value).expanduser()
    if not path.is_file():
        raise InputInvalidError(f"SSH key not found: {path}")
    return path


__all__ = [
    "MAX_SIZE_BYTES",
    "MAX_TARGETS",
    "SIZE_UNITS",
    "ensure_unique_targets",
    "format_size",
    "parse_drive_letter",
    "parse_key_path",
    "parse_size",
    "parse_target_count",
    "parse_target_list",
    "parse_target_name",
    "parse_user",
]
