"""Partition query and resize operations.

This module wraps the Windows Storage cmdlets (Get-Partition,
Get-PartitionSupportedSize, Resize-Partition) behind two calls:
- query: read current and supported sizes for a drive letter
- resize: set a new partition size and report the resulting size

The scripts print a single compact JSON object on success and use
dedicated exit codes for "drive not found" and "resize refused".
"""

import json
import logging

from volshrink.log_sanitizer import LogSanitizer
from volshrink.models import ErrorKind, ResourceConstraint
from volshrink.remote_exec import RemoteExecError, RemoteExecutor, RemoteResult, SSHConfig

logger = logging.getLogger(__name__)

EXIT_RESOURCE_NOT_FOUND = 3
EXIT_RESIZE_REFUSED = 4

_DRIVE_CHECK = """\
if (-not (Get-Partition -DriveLetter {drive} -ErrorAction SilentlyContinue)) {{
    [Console]::Error.WriteLine("Drive {drive}: does not exist")
    exit {not_found}
}}
"""

QUERY_SCRIPT = (
    "$ErrorActionPreference = 'Stop'\n"
    + _DRIVE_CHECK
    + """\
$partition = Get-Partition -DriveLetter {drive}
$supported = Get-PartitionSupportedSize -DriveLetter {drive}
[pscustomobject]@{{
    Size = [uint64]$partition.Size
    SizeMin = [uint64]$supported.SizeMin
    SizeMax = [uint64]$supported.SizeMax
}} | ConvertTo-Json -Compress
"""
)

RESIZE_SCRIPT = (
    "$ErrorActionPreference = 'Stop'\n"
    + _DRIVE_CHECK
    + """\
try {{
    Resize-Partition -DriveLetter {drive} -Size {size}
}} catch {{
    [Console]::Error.WriteLine($_.Exception.Message)
    exit {refused}
}}
[pscustomobject]@{{
    Size = [uint64](Get-Partition -DriveLetter {drive}).Size
}} | ConvertTo-Json -Compress
"""
)


class ResourceNotFoundError(RemoteExecError):
    """Raised when the drive letter does not exist on the host."""

    kind = ErrorKind.RESOURCE_NOT_FOUND


class QueryFailedError(RemoteExecError):
    """Raised when the size query fails or returns unusable output."""

    kind = ErrorKind.QUERY_FAILED


class MutationFailedError(RemoteExecError):
    """Raised when the host refuses or fails the resize."""

    kind = ErrorKind.MUTATION_FAILED


class PartitionClient:
    """Query and resize partitions through a RemoteExecutor."""

    def __init__(
        self,
        executor: type[RemoteExecutor] = RemoteExecutor,
        query_timeout: int = 120,
        resize_timeout: int = 1800,
    ):
        """Initialize partition client.

        Args:
            executor: Object exposing run_powershell(ssh_config, script, timeout)
            query_timeout: Timeout for read-only queries in seconds
            resize_timeout: Timeout for resize calls in seconds
        """
        self.executor = executor
        self.query_timeout = query_timeout
        self.resize_timeout = resize_timeout

    def query(self, ssh_config: SSHConfig, drive: str) -> ResourceConstraint:
        """Read the current and supported sizes of a partition.

        Raises:
            ResourceNotFoundError: Drive letter does not exist on the host
            QueryFailedError: Query failed or output was malformed
            TargetUnreachableError, AuthenticationFailedError: transport failures
        """
        script = QUERY_SCRIPT.format(drive=drive, not_found=EXIT_RESOURCE_NOT_FOUND)
        logger.debug(f"Querying partition {drive}: on {ssh_config.host}")
        result = self.executor.run_powershell(ssh_config, script, timeout=self.query_timeout)

        if result.exit_code == EXIT_RESOURCE_NOT_FOUND:
            raise ResourceNotFoundError(ssh_config.host, f"drive {drive}: not found")
        if not result.success:
            raise QueryFailedError(ssh_config.host, self._failure_detail(result))

        data = self._parse_json(result, QueryFailedError)
        try:
            return ResourceConstraint(
                current_size=int(data["Size"]),
                minimum_size=int(data["SizeMin"]),
                maximum_size=int(data["SizeMax"]) if data.get("SizeMax") is not None else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise QueryFailedError(ssh_config.host, f"unusable size data: {e}") from e

    def resize(self, ssh_config: SSHConfig, drive: str, new_size: int) -> int:
        """Resize a partition and return its resulting size in bytes.

        Raises:
            ResourceNotFoundError: Drive letter disappeared since collection
            MutationFailedError: Host refused the resize or output was malformed
            TargetUnreachableError, AuthenticationFailedError: transport failures
        """
        script = RESIZE_SCRIPT.format(
            drive=drive,
            size=int(new_size),
            not_found=EXIT_RESOURCE_NOT_FOUND,
            refused=EXIT_RESIZE_REFUSED,
        )
        logger.debug(f"Resizing partition {drive}: on {ssh_config.host} to {new_size} bytes")
        result = self.executor.run_powershell(ssh_config, script, timeout=self.resize_timeout)

        if result.exit_code == EXIT_RESOURCE_NOT_FOUND:
            raise ResourceNotFoundError(ssh_config.host, f"drive {drive}: not found")
        if not result.success:
            raise MutationFailedError(ssh_config.host, self._failure_detail(result))

        data = self._parse_json(result, MutationFailedError)
        try:
            return int(data["Size"])
        except (KeyError, TypeError, ValueError) as e:
            raise MutationFailedError(ssh_config.host, f"unusable size data: {e}") from e

    @staticmethod
    def _failure_detail(result: RemoteResult) -> str:
        detail = LogSanitizer.summarize(result.get_output())
        return detail or f"exit code {result.exit_code}"

    @staticmethod
    def _parse_json(result: RemoteResult, error_cls: type[RemoteExecError]) -> dict:
        # PowerShell may emit progress or warnings before the JSON line
        lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if not lines:
            raise error_cls(result.host, "no output from PowerShell")
        try:
            data = json.loads(lines[-1])
        except json.JSONDecodeError as e:
            raise error_cls(result.host, f"malformed JSON output: {e}") from e
        if not isinstance(data, dict):
            raise error_cls(result.host, "unexpected JSON output")
        return data


__all__ = [
    "EXIT_RESIZE_REFUSED",
    "EXIT_RESOURCE_NOT_FOUND",
    "MutationFailedError",
    "PartitionClient",
    "QueryFailedError",
    "ResourceNotFoundError",
]
