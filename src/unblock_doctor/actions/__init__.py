"""Actions package - Action layer with explicit contracts.

Each action declares:
- read_only: Whether it modifies the managed host
- requires_backup: Whether backup is mandatory
- rollback_support: Whether it can undo changes
- prerequisites: What must hold before the action runs
"""

from unblock_doctor.actions.check_firewall import CheckFirewallAction, CheckResult
from unblock_doctor.actions.report import ReportGenerator

__all__ = ["CheckFirewallAction", "CheckResult", "ReportGenerator"]
