import os
import stat
from dataclasses import replace
from unittest.mock import MagicMock

import paramiko
import pytest

from unblock_doctor.connector.ssh import RemoteCommandRunner
from unblock_doctor.exceptions import ConnectionFailedError, ConnectionSetupError


def _channel_result(stdout=b"", stderr=b"", exit_code=0):
    out = MagicMock()
    out.read.return_value = stdout
    out.channel.recv_exit_status.return_value = exit_code
    err = MagicMock()
    err.read.return_value = stderr
    return MagicMock(), out, err


def test_key_file_written_with_owner_only_permissions(settings, da_host):
    runner = RemoteCommandRunner(settings, client_factory=MagicMock)
    session = runner.create_session(replace(da_host, private_key="line1\r\nline2"))

    assert session.key_path.exists()
    assert stat.S_IMODE(os.stat(session.key_path).st_mode) == 0o600
    assert session.key_path.read_text() == "line1\nline2\n"
    session.cleanup()
    assert not session.key_path.exists()


def test_each_session_gets_a_fresh_key_file(settings, da_host):
    runner = RemoteCommandRunner(settings, client_factory=MagicMock)
    first = runner.create_session(da_host)
    second = runner.create_session(da_host)
    assert first.key_path != second.key_path
    first.cleanup()
    second.cleanup()


def test_host_without_key_cannot_open_session(settings, da_host):
    runner = RemoteCommandRunner(settings, client_factory=MagicMock)
    with pytest.raises(ConnectionSetupError):
        runner.create_session(replace(da_host, private_key=""))
    with pytest.raises(ConnectionSetupError):
        runner.create_session(replace(da_host, fqdn="", ip=""))


def test_unwritable_key_dir_is_setup_error(settings, da_host, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    runner = RemoteCommandRunner(replace(settings, key_dir=str(blocker)), client_factory=MagicMock)
    with pytest.raises(ConnectionSetupError):
        runner.create_session(da_host)


def test_commands_share_one_transport(settings, da_host):
    client = MagicMock()
    client.exec_command.side_effect = [
        _channel_result(b"  csf: v15.00\n"),
        _channel_result(b"", b"grep: no such file", 1),
    ]
    runner = RemoteCommandRunner(settings, client_factory=lambda: client)

    with runner.create_session(da_host) as session:
        assert session.execute("csf -v") == "csf: v15.00"
        result = session.run("cat /missing")

    assert result.exit_code == 1
    assert result.success is False
    assert result.stderr == "grep: no such file"
    client.connect.assert_called_once()
    kwargs = client.connect.call_args.kwargs
    assert kwargs["hostname"] == "da1.example.net"
    assert kwargs["username"] == "root"
    assert kwargs["port"] == 22
    assert kwargs["timeout"] == settings.ssh_timeout
    assert kwargs["look_for_keys"] is False
    client.close.assert_called_once()


def test_connect_failure_raises_connection_failed(settings, da_host):
    client = MagicMock()
    client.connect.side_effect = paramiko.AuthenticationException("Authentication failed.")
    runner = RemoteCommandRunner(settings, client_factory=lambda: client)

    session = runner.create_session(da_host)
    with pytest.raises(ConnectionFailedError) as excinfo:
        with session:
            session.execute("csf -v")

    assert excinfo.value.host == "da1.example.net"
    assert excinfo.value.port == 22
    assert isinstance(excinfo.value.cause, paramiko.AuthenticationException)
    assert not session.key_path.exists()


def test_cleanup_is_idempotent(settings, da_host):
    client = MagicMock()
    client.exec_command.return_value = _channel_result(b"ok")
    runner = RemoteCommandRunner(settings, client_factory=lambda: client)

    session = runner.create_session(da_host)
    session.execute("true")
    session.cleanup()
    session.cleanup()

    assert session.closed
    client.close.assert_called_once()
    with pytest.raises(ConnectionFailedError):
        session.connect()


def test_failed_key_write_leaves_no_file(settings, da_host, monkeypatch):
    def short_write(fd, mode):
        f = open(fd, mode)
        f.write("-----BEGIN")
        f.flush()
        f.close()
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("unblock_doctor.connector.ssh.os.fdopen", short_write)
    runner = RemoteCommandRunner(settings, client_factory=MagicMock)

    with pytest.raises(ConnectionSetupError):
        runner.create_session(da_host)
    assert os.listdir(settings.key_dir) == []


def test_run_without_transport_is_connection_failure(settings, da_host, monkeypatch):
    session = RemoteCommandRunner(settings, client_factory=MagicMock).create_session(da_host)
    monkeypatch.setattr(session, "connect", lambda: None)

    with pytest.raises(ConnectionFailedError):
        session.run("csf -v")
    session.cleanup()
    assert not session.key_path.exists()
