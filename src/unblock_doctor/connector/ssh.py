"""SSH Connector - Scoped command sessions against managed hosts.

A session binds one Host to one freshly written private-key file and
one paramiko transport. All commands of a check run over that single
transport, each on its own channel, so the TCP/SSH handshake happens
once per session. The key file is deleted when the session is cleaned
up, which happens exactly once whatever the exit path.

Example:
    >>> runner = RemoteCommandRunner(Settings())
    >>> with runner.create_session(host) as session:
    ...     print(session.execute("csf -g 203.0.113.7"))
"""

import logging
import os
import secrets
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import paramiko

from unblock_doctor.config import Settings
from unblock_doctor.exceptions import ConnectionFailedError, ConnectionSetupError
from unblock_doctor.model.host import Host

logger = logging.getLogger(__name__)

_PREVIEW_LENGTH = 200


@dataclass
class CommandResult:
    """Result of a command execution."""

    command: str
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: float = 0.0
    success: bool = field(init=False)

    def __post_init__(self) -> None:
        self.success = self.exit_code == 0


def _preview(text: str) -> str:
    if len(text) <= _PREVIEW_LENGTH:
        return text
    return text[:_PREVIEW_LENGTH] + "..."


class SshSession:
    """One SSH session: a key file plus a lazily opened paramiko client.

    Not thread-safe. A session belongs to the caller that created it and
    must not be shared between concurrent call sites.
    """

    def __init__(
        self,
        host: Host,
        key_path: Path,
        settings: Settings,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ) -> None:
        self.host = host
        self.key_path = key_path
        self.settings = settings
        self._client_factory = client_factory
        self._client: paramiko.SSHClient | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def user(self) -> str:
        return self.host.admin or self.settings.ssh_user

    def connect(self) -> None:
        """Open the SSH transport if it is not open yet.

        Raises:
            ConnectionFailedError: Host unreachable, auth refused, or timeout.
        """
        if self._closed:
            raise ConnectionFailedError(
                "SSH session already cleaned up",
                host=self.host.address,
                port=self.host.port_ssh,
            )
        if self._client is not None:
            return

        client = self._client_factory()
        # Host keys are pre-seeded by fleet enrollment; strict checking is off
        # here and trust rests on that enrollment step.
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        try:
            client.connect(
                hostname=self.host.address,
                port=self.host.port_ssh,
                username=self.user,
                key_filename=str(self.key_path),
                timeout=self.settings.ssh_timeout,
                banner_timeout=self.settings.ssh_timeout,
                auth_timeout=self.settings.ssh_timeout,
                look_for_keys=False,
                allow_agent=False,
            )
        except (paramiko.SSHException, OSError, EOFError) as e:
            client.close()
            logger.error(
                "SSH connection to %s:%s failed: %s",
                self.host.address,
                self.host.port_ssh,
                e,
            )
            raise ConnectionFailedError(
                f"SSH connection failed to {self.host.address}: {e}",
                host=self.host.address,
                port=self.host.port_ssh,
                cause=e,
            ) from e

        self._client = client
        logger.info("SSH session opened to %s:%s as %s", self.host.address, self.host.port_ssh, self.user)

    def run(self, command: str, timeout: float | None = None) -> CommandResult:
        """Execute a command and return its full result.

        A non-zero exit status is logged as a warning and returned, not
        raised: "grep found nothing" is a valid outcome.

        Raises:
            ConnectionFailedError: Transport failure or timeout.
        """
        self.connect()
        client = self._client
        if client is None:
            raise ConnectionFailedError(
                "SSH session has no open transport",
                host=self.host.address,
                port=self.host.port_ssh,
            )

        cmd_timeout = timeout if timeout is not None else self.settings.ssh_timeout
        started = time.monotonic()
        logger.info("SSH command on %s: %s", self.host.address, _preview(command))

        try:
            _stdin, stdout, stderr = client.exec_command(command, timeout=cmd_timeout)
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            exit_code = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError, EOFError) as e:
            elapsed = (time.monotonic() - started) * 1000
            logger.error(
                "SSH command failed on %s after %.2f ms: %s (%s)",
                self.host.address,
                elapsed,
                e,
                type(e).__name__,
            )
            raise ConnectionFailedError(
                f"SSH command execution failed on {self.host.address}: {e}",
                host=self.host.address,
                port=self.host.port_ssh,
                cause=e,
            ) from e

        elapsed = (time.monotonic() - started) * 1000
        result = CommandResult(
            command=command,
            stdout=out,
            stderr=err,
            exit_code=exit_code,
            duration_ms=round(elapsed, 2),
        )

        if not result.success:
            logger.warning(
                "SSH command returned exit code %s on %s: %s | stderr: %s",
                exit_code,
                self.host.address,
                _preview(command),
                _preview(err.strip()),
            )
        logger.info(
            "SSH command completed on %s in %.2f ms (%d bytes): %s",
            self.host.address,
            result.duration_ms,
            len(out),
            _preview(out.strip()),
        )
        return result

    def execute(self, command: str) -> str:
        """Execute a command and return its trimmed stdout."""
        return self.run(command).stdout.strip()

    def cleanup(self) -> None:
        """Close the transport and delete the key file. Safe to call twice."""
        if self._closed:
            return
        self._closed = True

        if self._client is not None:
            self._client.close()
            self._client = None

        try:
            self.key_path.unlink(missing_ok=True)
        except OSError as e:
            # Raising here would mask the exception that triggered cleanup.
            logger.error("Could not delete SSH key file %s: %s", self.key_path, e)
            return
        logger.debug("SSH session to %s cleaned up", self.host.address)

    def __enter__(self) -> "SshSession":
        return self

    def __exit__(self, *args: object) -> None:
        self.cleanup()


class RemoteCommandRunner:
    """Creates SSH sessions for hosts.

    No retries happen at this layer.
    """

    def __init__(
        self,
        settings: Settings,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ) -> None:
        self.settings = settings
        self._client_factory = client_factory

    def create_session(self, host: Host) -> SshSession:
        """Write the host key to a private temp file and return a session.

        Raises:
            ConnectionSetupError: Host has no address or key, or the key
                file could not be written.
        """
        if not host.is_connectable():
            raise ConnectionSetupError(
                f"Host {host.id} needs an address and a private key before SSH can be used"
            )

        key_path = self._write_key(host.private_key)
        logger.debug("SSH key for host %s written to %s", host.address, key_path)
        return SshSession(host, key_path, self.settings, self._client_factory)

    def _write_key(self, material: str) -> Path:
        """Materialize key material as a 0600 file with a fresh name."""
        normalized = material.replace("\r\n", "\n").replace("\r", "\n")
        if not normalized.endswith("\n"):
            normalized += "\n"

        key_dir = Path(self.settings.key_dir)
        path = key_dir / f"key_{secrets.token_hex(8)}"
        created = False
        try:
            key_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            created = True
            with os.fdopen(fd, "w") as f:
                f.write(normalized)
        except OSError as e:
            if created:
                # No session owns the file yet, so nothing else would remove it.
                path.unlink(missing_ok=True)
            raise ConnectionSetupError(f"Failed to write SSH key file: {e}") from e
        return path
