"""Data models and schema DDL for the storage layer.

Provides dataclass records for each table and the DDL constants
used by db.py to initialize the database.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from unblock_doctor.model.host import Host

# Stored in hosts.private_key when the key lives in the OS keyring.
KEYRING_MARKER = "__keyring__"

# Report status values.
STATUS_NO_BLOCKS = "no_blocks_found"
STATUS_BLOCKS_DETECTED = "blocks_detected"
STATUS_UNBLOCKED = "unblocked_successfully"
STATUS_UNBLOCK_FAILED = "unblock_failed"

REPORT_STATUSES = (STATUS_NO_BLOCKS, STATUS_BLOCKS_DETECTED, STATUS_UNBLOCKED, STATUS_UNBLOCK_FAILED)


# ─── Schema DDL ────────────────────────────────────────────────────────────────

SCHEMA_HOSTS = """
CREATE TABLE IF NOT EXISTS hosts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    fqdn TEXT NOT NULL,
    ip TEXT NOT NULL DEFAULT '',
    port_ssh INTEGER NOT NULL DEFAULT 22,
    panel TEXT NOT NULL DEFAULT 'unknown',
    admin TEXT NOT NULL DEFAULT 'root',
    private_key TEXT NOT NULL DEFAULT '',
    public_key TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

SCHEMA_REPORTS = """
CREATE TABLE IF NOT EXISTS reports (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    ip TEXT NOT NULL,
    host_id INTEGER,
    status TEXT NOT NULL,
    analysis_json TEXT NOT NULL DEFAULT '{}',
    logs_json TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    FOREIGN KEY (host_id) REFERENCES hosts(id) ON DELETE SET NULL
);
"""

# Pruning and the recent-reports listing both scan by creation time.
SCHEMA_REPORTS_CREATED_INDEX = """
CREATE INDEX IF NOT EXISTS idx_reports_created_at ON reports (created_at);
"""

ALL_SCHEMAS = [SCHEMA_HOSTS, SCHEMA_REPORTS, SCHEMA_REPORTS_CREATED_INDEX]


# ─── Record Dataclasses ───────────────────────────────────────────────────────


@dataclass
class HostRecord:
    """A registered host. ``private_key`` is already resolved from the keyring."""

    id: int
    name: str
    fqdn: str
    ip: str = ""
    port_ssh: int = 22
    panel: str = "unknown"
    admin: str = "root"
    private_key: str = field(default="", repr=False)
    public_key: str = ""
    key_in_keyring: bool = False
    created_at: str = ""

    def to_host(self) -> Host:
        return Host(
            id=self.id,
            fqdn=self.fqdn,
            ip=self.ip,
            port_ssh=self.port_ssh,
            panel=self.panel,
            admin=self.admin,
            private_key=self.private_key,
            public_key=self.public_key,
        )

    def to_dict(self) -> dict[str, Any]:
        # Key material is never exported.
        return {
            "id": self.id,
            "name": self.name,
            "fqdn": self.fqdn,
            "ip": self.ip,
            "port_ssh": self.port_ssh,
            "panel": self.panel,
            "admin": self.admin,
            "key_storage": "keyring" if self.key_in_keyring else "database",
            "created_at": self.created_at,
        }


@dataclass
class ReportRecord:
    """A persisted firewall report."""

    id: int
    ip: str
    host_id: int | None
    status: str
    analysis_json: str = "{}"
    logs_json: str = "{}"
    created_at: str = ""

    @property
    def analysis(self) -> dict[str, Any]:
        return json.loads(self.analysis_json or "{}")

    @property
    def logs(self) -> dict[str, Any]:
        return json.loads(self.logs_json or "{}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ip": self.ip,
            "host_id": self.host_id,
            "status": self.status,
            "analysis": self.analysis,
            "logs": self.logs,
            "created_at": self.created_at,
        }
