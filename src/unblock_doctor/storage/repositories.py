"""Repository classes for CRUD operations on the storage layer.

All writes use explicit transactions. Read operations return
typed dataclass records.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import keyring
from keyring.errors import KeyringError

from unblock_doctor.storage.db import get_db, transaction
from unblock_doctor.storage.models import KEYRING_MARKER, HostRecord, ReportRecord

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "unblock-doctor"

_SQLITE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _keyring_user(host_id: int) -> str:
    return f"host:{host_id}"


class HostRepository:
    """CRUD operations for the hosts table.

    Private keys go to the OS keyring when a backend is available and
    to the row otherwise.
    """

    def create(
        self,
        name: str,
        fqdn: str,
        private_key: str,
        ip: str = "",
        port_ssh: int = 22,
        panel: str = "unknown",
        admin: str = "root",
        public_key: str = "",
    ) -> int:
        """Insert a new host record. Returns the new host ID."""
        with transaction() as db:
            cursor = db.execute(
                """INSERT INTO hosts (name, fqdn, ip, port_ssh, panel, admin, public_key)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (name, fqdn, ip, port_ssh, panel, admin, public_key),
            )
            host_id: int = cursor.lastrowid  # type: ignore[assignment]

            stored_key = KEYRING_MARKER
            try:
                keyring.set_password(KEYRING_SERVICE, _keyring_user(host_id), private_key)
            except KeyringError as e:
                logger.warning("No usable keyring backend (%s); storing key for host %s in the database", e, host_id)
                stored_key = private_key

            db.execute("UPDATE hosts SET private_key = ? WHERE id = ?", (stored_key, host_id))
        logger.info("Host %s (%s) added", host_id, fqdn)
        return host_id

    def get_all(self) -> list[HostRecord]:
        """Return all hosts ordered by id. Keys are not resolved."""
        db = get_db()
        rows = db.execute("SELECT * FROM hosts ORDER BY id").fetchall()
        return [self._row_to_record(row, resolve_key=False) for row in rows]

    def get_by_id(self, host_id: int) -> HostRecord | None:
        """Return a host by ID with its private key, or None if not found."""
        db = get_db()
        row = db.execute("SELECT * FROM hosts WHERE id = ?", (host_id,)).fetchone()
        return self._row_to_record(row) if row else None

    def delete(self, host_id: int) -> bool:
        """Delete a host and its keyring entry. Returns True if a row was deleted."""
        db = get_db()
        row = db.execute("SELECT private_key FROM hosts WHERE id = ?", (host_id,)).fetchone()
        if row is None:
            return False

        if row["private_key"] == KEYRING_MARKER:
            try:
                keyring.delete_password(KEYRING_SERVICE, _keyring_user(host_id))
            except KeyringError as e:
                logger.warning("Could not delete keyring entry for host %s: %s", host_id, e)

        with transaction() as db:
            cursor = db.execute("DELETE FROM hosts WHERE id = ?", (host_id,))
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_record(row: Any, resolve_key: bool = True) -> HostRecord:
        stored = row["private_key"] or ""
        in_keyring = stored == KEYRING_MARKER
        private_key = "" if in_keyring else stored

        if in_keyring and resolve_key:
            try:
                private_key = keyring.get_password(KEYRING_SERVICE, _keyring_user(row["id"])) or ""
            except KeyringError as e:
                logger.error("Could not read key for host %s from keyring: %s", row["id"], e)

        return HostRecord(
            id=row["id"],
            name=row["name"],
            fqdn=row["fqdn"],
            ip=row["ip"] or "",
            port_ssh=row["port_ssh"],
            panel=row["panel"],
            admin=row["admin"],
            private_key=private_key,
            public_key=row["public_key"] or "",
            key_in_keyring=in_keyring,
            created_at=row["created_at"] or "",
        )


class ReportRepository:
    """CRUD operations for the reports table."""

    def create(
        self,
        ip: str,
        host_id: int | None,
        status: str,
        analysis: dict[str, Any],
        logs: dict[str, Any],
    ) -> int:
        """Insert a report. Returns the new report ID."""
        with transaction() as db:
            cursor = db.execute(
                """INSERT INTO reports (ip, host_id, status, analysis_json, logs_json)
                   VALUES (?, ?, ?, ?, ?)""",
                (ip, host_id, status, json.dumps(analysis, default=str), json.dumps(logs, default=str)),
            )
        return cursor.lastrowid  # type: ignore[return-value]

    def get_by_id(self, report_id: int) -> ReportRecord | None:
        db = get_db()
        row = db.execute("SELECT * FROM reports WHERE id = ?", (report_id,)).fetchone()
        return self._row_to_record(row) if row else None

    def get_recent(self, limit: int = 20) -> list[ReportRecord]:
        """Newest reports first."""
        db = get_db()
        rows = db.execute(
            "SELECT * FROM reports ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def delete_older_than(self, max_age_seconds: int, now: datetime | None = None) -> int:
        """Delete reports older than ``max_age_seconds``. Returns rows deleted."""
        now = now or datetime.now(timezone.utc)
        cutoff = (now - timedelta(seconds=max_age_seconds)).strftime(_SQLITE_TIME_FORMAT)
        with transaction() as db:
            cursor = db.execute("DELETE FROM reports WHERE created_at < ?", (cutoff,))
        return cursor.rowcount

    @staticmethod
    def _row_to_record(row: Any) -> ReportRecord:
        return ReportRecord(
            id=row["id"],
            ip=row["ip"],
            host_id=row["host_id"],
            status=row["status"],
            analysis_json=row["analysis_json"] or "{}",
            logs_json=row["logs_json"] or "{}",
            created_at=row["created_at"] or "",
        )
