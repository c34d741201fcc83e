"""Remote PowerShell execution module.

This module runs PowerShell scripts on Windows hosts over OpenSSH, or on the
local machine when the target is a local alias. Scripts are passed with
-EncodedCommand so no quoting survives into the remote shell.

Security:
- Key-based authentication only (BatchMode, no password prompts)
- No shell=True
- Timeout enforcement
- stderr sanitized before it reaches logs or error messages
"""

import base64
import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from volshrink.errors import VolshrinkError
from volshrink.log_sanitizer import LogSanitizer
from volshrink.models import ErrorKind
from volshrink.models.target_models import LOCAL_ALIASES

logger = logging.getLogger(__name__)

SSH_FAILURE_EXIT_CODE = 255

_AUTH_FAILURE_MARKERS = (
    "permission denied",
    "authentication failed",
    "too many authentication failures",
    "no supported authentication methods",
)


class RemoteExecError(VolshrinkError):
    """Raised when a remote call fails. Tagged with the host and an ErrorKind."""

    kind = ErrorKind.QUERY_FAILED

    def __init__(self, host: str, message: str):
        self.host = host
        self.message = message
        super().__init__(f"{host}: {message}")


class TargetUnreachableError(RemoteExecError):
    """Raised when a host cannot be reached or does not answer in time."""

    kind = ErrorKind.TARGET_UNREACHABLE


class AuthenticationFailedError(RemoteExecError):
    """Raised when the host rejects the supplied credentials."""

    kind = ErrorKind.AUTHENTICATION_FAILED


@dataclass(frozen=True)
class Credentials:
    """Credentials shared by every target in a session."""

    user: str
    key_path: Path | None = None
    port: int = 22
    strict_host_key_checking: bool = False

    def for_host(self, host: str) -> "SSHConfig":
        """Build the SSH configuration for one host."""
        return SSHConfig(
            host=host,
            user=self.user,
            key_path=self.key_path,
            port=self.port,
            strict_host_key_checking=self.strict_host_key_checking,
        )


@dataclass(frozen=True)
class SSHConfig:
    """SSH connection configuration for a single host."""

    host: str
    user: str
    key_path: Path | None = None
    port: int = 22
    strict_host_key_checking: bool = False

    @property
    def is_local(self) -> bool:
        return self.host.lower() in LOCAL_ALIASES


@dataclass
class RemoteResult:
    """Result from remote script execution."""

    host: str
    success: bool
    stdout: str
    stderr: str
    exit_code: int
    duration: float = 0.0

    def get_output(self) -> str:
        """Get combined output."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr


class RemoteExecutor:
    """Execute PowerShell scripts on Windows hosts.

    This class provides:
    - Local execution for local aliases
    - Remote execution over OpenSSH for everything else
    - Classification of transport failures into typed errors
    """

    POWERSHELL = "powershell"

    @staticmethod
    def encode_script(script: str) -> str:
        """Encode a script for powershell -EncodedCommand (base64 of UTF-16LE)."""
        return base64.b64encode(script.encode("utf-16-le")).decode("ascii")

    @classmethod
    def build_powershell_command(cls, script: str) -> list[str]:
        """Build the powershell argument list for a script."""
        return [
            cls.POWERSHELL,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-EncodedCommand",
            cls.encode_script(script),
        ]

    @classmethod
    def build_ssh_command(cls, ssh_config: SSHConfig, remote_args: list[str], timeout: int) -> list[str]:
        """Build the ssh argument list that runs remote_args on the host.

        With strict host key checking the user's known_hosts is consulted and
        unknown or changed host keys fail the connection. Without it, host keys
        are neither checked nor recorded.
        """
        if ssh_config.strict_host_key_checking:
            host_key_options = ["-o", "StrictHostKeyChecking=yes"]
        else:
            host_key_options = [
                "-o",
                "StrictHostKeyChecking=no",
                "-o",
                "UserKnownHostsFile=/dev/null",
            ]
        ssh_cmd = [
            "ssh",
            *host_key_options,
            "-o",
            "LogLevel=ERROR",
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={min(timeout, 10)}",
            "-p",
            str(ssh_config.port),
        ]
        if ssh_config.key_path:
            ssh_cmd.extend(["-i", str(ssh_config.key_path)])
        ssh_cmd.append(f"{ssh_config.user}@{ssh_config.host}")
        ssh_cmd.extend(remote_args)
        return ssh_cmd

    @classmethod
    def run_powershell(cls, ssh_config: SSHConfig, script: str, timeout: int = 120) -> RemoteResult:
        """Run a PowerShell script on a host.

        A non-zero exit code from the script itself is returned as an
        unsuccessful RemoteResult; the caller decides what it means.

        Args:
            ssh_config: Connection details for the host
            script: PowerShell script text
            timeout: Timeout in seconds

        Returns:
            RemoteResult object

        Raises:
            TargetUnreachableError: Host unreachable, timed out, or tooling missing
            AuthenticationFailedError: Host rejected the credentials
        """
        host = ssh_config.host
        powershell_args = cls.build_powershell_command(script)

        if ssh_config.is_local:
            command = powershell_args
        else:
            command = cls.build_ssh_command(ssh_config, powershell_args, timeout)

        logger.debug(f"Running PowerShell on {host} (timeout {timeout}s)")
        start_time = time.time()

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,  # Exit codes carry meaning for the caller
            )
        except subprocess.TimeoutExpired as e:
            raise TargetUnreachableError(host, f"timed out after {timeout}s") from e
        except FileNotFoundError as e:
            raise TargetUnreachableError(host, f"{command[0]} executable not found") from e
        except OSError as e:
            raise TargetUnreachableError(host, f"failed to start {command[0]}: {e}") from e

        duration = time.time() - start_time

        if not ssh_config.is_local and result.returncode == SSH_FAILURE_EXIT_CODE:
            cls._raise_transport_error(host, result.stderr)

        return RemoteResult(
            host=host,
            success=result.returncode == 0,
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.returncode,
            duration=duration,
        )

    @staticmethod
    def _raise_transport_error(host: str, stderr: str) -> None:
        """Translate an ssh exit 255 into a typed error."""
        detail = LogSanitizer.summarize(stderr) or "ssh connection failed"
        lowered = detail.lower()
        if any(marker in lowered for marker in _AUTH_FAILURE_MARKERS):
            raise AuthenticationFailedError(host, detail)
        raise TargetUnreachableError(host, detail)


__all__ = [
    "AuthenticationFailedError",
    "Credentials",
    "RemoteExecError",
    "RemoteExecutor",
    "RemoteResult",
    "SSHConfig",
    "TargetUnreachableError",
]
