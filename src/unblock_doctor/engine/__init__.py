"""Engine package - Remediation rules and connection diagnostics."""

from unblock_doctor.engine.diagnostics import ConnectionDiagnosis, diagnose_connection_error
from unblock_doctor.engine.unblocker import FirewallUnblocker

__all__ = ["ConnectionDiagnosis", "FirewallUnblocker", "diagnose_connection_error"]
