import socket

import paramiko
import pytest
from paramiko.ssh_exception import NoValidConnectionsError

from unblock_doctor.engine.diagnostics import diagnose_connection_error, is_critical_error
from unblock_doctor.exceptions import ConnectionFailedError


@pytest.mark.parametrize(
    "message, cause",
    [
        ("proc_open() has been disabled for security reasons", "process execution disabled"),
        ("Load key \"/tmp/k\": error in libcrypto", "SSH key format"),
        ("root@host: Permission denied (publickey).", "SSH key authentication failed"),
        ("ssh: connect to host x port 22: Connection refused", "SSH service not running"),
        ("ssh: connect to host x port 22: Connection timed out", "Host unreachable"),
        ("Host key verification failed.", "host key"),
    ],
)
def test_critical_message_patterns(message, cause):
    diagnosis = diagnose_connection_error(ConnectionFailedError(message))
    assert diagnosis.critical is True
    assert cause.lower() in diagnosis.likely_cause.lower()
    assert diagnosis.suggested_action


@pytest.mark.parametrize(
    "cause, expected",
    [
        (paramiko.AuthenticationException("Authentication failed."), "SSH key authentication failed"),
        (NoValidConnectionsError({("192.0.2.1", 22): OSError("x")}), "SSH service not running or port blocked"),
        (socket.timeout("timed out"), "Host unreachable or SSH port filtered"),
        (paramiko.SSHException("not a valid RSA private key file"), "SSH key format issue (line endings or corruption)"),
    ],
)
def test_paramiko_exceptions_are_classified(cause, expected):
    error = ConnectionFailedError(f"SSH connection failed: {cause}", host="h", port=2222, cause=cause, ip="203.0.113.7")
    diagnosis = diagnose_connection_error(error)

    assert diagnosis.critical is True
    assert diagnosis.likely_cause == expected
    assert (diagnosis.host, diagnosis.port, diagnosis.ip) == ("h", 2222, "203.0.113.7")


def test_unknown_errors_are_not_critical():
    error = ConnectionFailedError("SSH command execution failed: channel closed", cause=paramiko.SSHException("channel closed"))
    assert is_critical_error(error) is False
    diagnosis = diagnose_connection_error(error)
    assert diagnosis.likely_cause is None
    assert diagnosis.to_dict()["error_type"] == "ConnectionFailedError"


def test_wrapped_cause_via_raise_from():
    try:
        try:
            raise ConnectionRefusedError(111, "refused")
        except ConnectionRefusedError as e:
            raise ConnectionFailedError("SSH connection failed") from e
    except ConnectionFailedError as error:
        assert is_critical_error(error)
