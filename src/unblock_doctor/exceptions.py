"""Exception hierarchy for unblock-doctor.

Parsing anomalies never raise. Everything below is raised by the
transport, the command catalog, or the remediation engine and is turned
into a single success/failure verdict by the CheckFirewallAction.
"""


class UnblockDoctorError(Exception):
    """Base class for all unblock-doctor errors."""


# =========================================================================
# Caller mistakes - never retried
# =========================================================================


class InvalidInputError(UnblockDoctorError, ValueError):
    """Input rejected before any remote work was attempted."""


class InvalidIpError(InvalidInputError):
    """The target is not a valid IPv4/IPv6 literal."""

    def __init__(self, ip: str) -> None:
        super().__init__(f"Invalid IP address format: {ip!r}")
        self.ip = ip


class UnknownOperationError(InvalidInputError):
    """A symbolic operation name has no command in the catalog."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"Unknown command operation: {operation!r}")
        self.operation = operation


class HostNotFoundError(InvalidInputError):
    """The host directory has no record for the requested id."""

    def __init__(self, host_id: int) -> None:
        super().__init__(f"Host with ID {host_id} not found")
        self.host_id = host_id


class AccessDeniedError(UnblockDoctorError):
    """The caller may not act on this host."""


# =========================================================================
# Transport
# =========================================================================


class ConnectionSetupError(UnblockDoctorError):
    """The local side of a session (private key file) could not be prepared."""


class ConnectionFailedError(UnblockDoctorError):
    """The SSH transport could not be established or was lost.

    Attributes:
        host: FQDN (or address) that was dialled.
        port: SSH port.
        cause: Underlying exception, if any.
        ip: Target IP of the check in progress, when known.
    """

    def __init__(
        self,
        message: str,
        *,
        host: str | None = None,
        port: int = 22,
        cause: BaseException | None = None,
        ip: str | None = None,
    ) -> None:
        super().__init__(message)
        self.host = host
        self.port = port
        self.cause = cause
        self.ip = ip


# =========================================================================
# Remediation
# =========================================================================


class CommandExecutionError(UnblockDoctorError):
    """A remediation sub-step failed on an otherwise healthy session.

    Attributes:
        command: The remote command that was running.
        output: Captured stdout (may be partial).
        error_output: Captured stderr or the transport error text.
        step: Name of the sub-step (e.g. ``fetch``, ``rewrite``).
        completed_steps: Steps that finished before the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        command: str,
        output: str | None = None,
        error_output: str | None = None,
        step: str | None = None,
        completed_steps: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.output = output
        self.error_output = error_output
        self.step = step
        self.completed_steps = list(completed_steps or [])


class CsfRemediationError(CommandExecutionError):
    """CSF deny removal or temporal whitelist failed."""


class UnsupportedPanelError(UnblockDoctorError):
    """Host panel has no analyzer; used as a non-fatal marker message."""

    def __init__(self, panel: str) -> None:
        super().__init__(
            f"Unsupported panel type {panel!r}: only CSF checks were performed"
        )
        self.panel = panel
