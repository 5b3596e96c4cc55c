"""Connection Diagnostics - Classify SSH failures for operators.

A failure is "critical" when it will not go away by retrying: a broken
or missing key, a refused port, a host that does not answer. Critical
failures are what a notification layer should escalate.
"""

import socket
from dataclasses import dataclass
from typing import Any

import paramiko
from paramiko.ssh_exception import NoValidConnectionsError

from unblock_doctor.exceptions import ConnectionFailedError


@dataclass(frozen=True)
class ErrorClass:
    """A known failure class: message pattern plus operator hints."""

    pattern: str
    likely_cause: str
    suggested_action: str


PROC_OPEN = ErrorClass(
    "proc_open",
    "Process execution disabled on the calling side",
    "Enable process execution (proc_open) for the service account",
)
KEY_FORMAT = ErrorClass(
    "error in libcrypto",
    "SSH key format issue (line endings or corruption)",
    "Verify SSH key format and line endings",
)
AUTH_FAILED = ErrorClass(
    "Permission denied (publickey)",
    "SSH key authentication failed",
    "Verify SSH key is correctly installed on remote server",
)
REFUSED = ErrorClass(
    "Connection refused",
    "SSH service not running or port blocked",
    "Check SSH service status and firewall rules",
)
TIMED_OUT = ErrorClass(
    "Connection timed out",
    "Host unreachable or SSH port filtered",
    "Check network reachability and the configured SSH port",
)
HOST_KEY = ErrorClass(
    "Host key verification failed",
    "Remote host key does not match the enrolled key",
    "Re-enroll the host key after confirming the server identity",
)

CRITICAL_CLASSES = (PROC_OPEN, KEY_FORMAT, AUTH_FAILED, REFUSED, TIMED_OUT, HOST_KEY)


@dataclass(frozen=True)
class ConnectionDiagnosis:
    """Outcome of classifying one connection error."""

    error_type: str
    error_message: str
    critical: bool
    likely_cause: str | None = None
    suggested_action: str | None = None
    host: str | None = None
    port: int | None = None
    ip: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.error_type,
            "error_message": self.error_message,
            "critical": self.critical,
            "likely_cause": self.likely_cause,
            "suggested_action": self.suggested_action,
            "host": self.host,
            "port": self.port,
            "ip": self.ip,
        }


def _causes(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        current = getattr(current, "cause", None) or current.__cause__
    return chain


def _class_for_exception(exc: BaseException) -> ErrorClass | None:
    # BadHostKeyException and the key-file errors subclass SSHException,
    # so they are checked first.
    if isinstance(exc, paramiko.BadHostKeyException):
        return HOST_KEY
    if isinstance(exc, paramiko.AuthenticationException):
        return AUTH_FAILED
    if isinstance(exc, paramiko.PasswordRequiredException):
        return KEY_FORMAT
    if isinstance(exc, paramiko.SSHException) and "private key" in str(exc).lower():
        return KEY_FORMAT
    if isinstance(exc, NoValidConnectionsError):
        return REFUSED
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return TIMED_OUT
    if isinstance(exc, ConnectionRefusedError):
        return REFUSED
    return None


def classify(exc: BaseException) -> ErrorClass | None:
    """Known failure class of ``exc`` or any exception it wraps."""
    chain = _causes(exc)
    for error in chain:
        message = str(error)
        for error_class in CRITICAL_CLASSES:
            if error_class.pattern in message:
                return error_class
    for error in chain:
        error_class = _class_for_exception(error)
        if error_class is not None:
            return error_class
    return None


def is_critical_error(exc: BaseException) -> bool:
    return classify(exc) is not None


def diagnose_connection_error(exc: BaseException) -> ConnectionDiagnosis:
    """Build the operator-facing diagnosis for a transport failure."""
    error_class = classify(exc)
    host = port = ip = None
    if isinstance(exc, ConnectionFailedError):
        host, port, ip = exc.host, exc.port, exc.ip

    return ConnectionDiagnosis(
        error_type=type(exc).__name__,
        error_message=str(exc),
        critical=error_class is not None,
        likely_cause=error_class.likely_cause if error_class else None,
        suggested_action=error_class.suggested_action if error_class else None,
        host=host,
        port=port,
        ip=ip,
    )
