"""Sanitization of remote output before it reaches logs or the terminal.

Remote PowerShell and ssh stderr can echo back command lines, environment
values, and key paths. Everything volshrink prints or logs from a remote host
passes through LogSanitizer first.

Design Philosophy:
- Err on the side of over-redaction
- Pattern-based, not keyword matching
- Bounded output: long stderr is truncated
"""

import re
from re import Pattern


class LogSanitizer:
    """Redact secrets from remote output.

    All methods are class methods and can be called without instantiation.
    """

    REDACTED = "[REDACTED]"
    MASKED = "****"
    MAX_LENGTH = 500

    SECRET_PATTERNS: dict[str, Pattern] = {
        "password": re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE),
        "securestring": re.compile(
            r"(ConvertTo-SecureString\s+(?:-String\s+)?[\"']?)([^\s\"']+)", re.IGNORECASE
        ),
        "token_assignment": re.compile(
            r'([^a-zA-Z]token["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE
        ),
        "credential": re.compile(
            r'(credential["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE
        ),
    }

    # ssh -i arguments and identity file mentions leak the local key layout
    KEY_PATH_PATTERN: Pattern = re.compile(
        r"((?:identity file|-i)\s+)(\S+)", re.IGNORECASE
    )

    @classmethod
    def sanitize(cls, message: str) -> str:
        """Redact secrets and key paths from a message.

        Examples:
            >>> LogSanitizer.sanitize("password=hunter2")
            'password=[REDACTED]'
            >>> LogSanitizer.sanitize("Load key -i /home/me/.ssh/id_ed25519 failed")
            'Load key -i **** failed'
        """
        if not isinstance(message, str):
            message = str(message)

        result = message
        for pattern in cls.SECRET_PATTERNS.values():
            result = pattern.sub(r"\1" + cls.REDACTED, result)

        result = cls.KEY_PATH_PATTERN.sub(r"\1" + cls.MASKED, result)
        return result

    @classmethod
    def summarize(cls, output: str, max_length: int | None = None) -> str:
        """Sanitize and collapse remote output into a single bounded line.

        Args:
            output: Raw stdout or stderr text
            max_length: Maximum length of the result (default: MAX_LENGTH)

        Returns:
            Single-line sanitized text, truncated with "..." if needed
        """
        limit = max_length or cls.MAX_LENGTH
        lines = [line.strip() for line in (output or "").splitlines() if line.strip()]
        text = cls.sanitize(" ".join(lines))
        if len(text) > limit:
            text = text[: limit - 3].rstrip() + "..."
        return text


__all__ = ["LogSanitizer"]
