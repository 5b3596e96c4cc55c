"""Connector package - SSH transport to managed hosts."""

from unblock_doctor.connector.ssh import CommandResult, RemoteCommandRunner, SshSession

__all__ = ["CommandResult", "RemoteCommandRunner", "SshSession"]
