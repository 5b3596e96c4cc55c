"""SQLite storage layer for unblock-doctor.

Persists the host directory and firewall reports.
DB file: ./data/unblock_doctor.db by default (auto-created on startup).
"""

from unblock_doctor.storage.db import close_db, get_db, init_db, set_db_path
from unblock_doctor.storage.repositories import HostRepository, ReportRepository

__all__ = [
    "HostRepository",
    "ReportRepository",
    "close_db",
    "get_db",
    "init_db",
    "set_db_path",
]
