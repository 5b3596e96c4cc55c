"""Analyzer package - Per-panel firewall analysis strategies.

Analyzers drive the SSH session, but only through the command catalog;
all reasoning about output is delegated to the parsers.
"""

from unblock_doctor.analyzer.firewall import (
    CpanelAnalyzer,
    DirectAdminAnalyzer,
    FirewallAnalyzer,
    FirewallAnalyzerFactory,
    UnknownPanelAnalyzer,
    validate_ip,
)

__all__ = [
    "CpanelAnalyzer",
    "DirectAdminAnalyzer",
    "FirewallAnalyzer",
    "FirewallAnalyzerFactory",
    "UnknownPanelAnalyzer",
    "validate_ip",
]
