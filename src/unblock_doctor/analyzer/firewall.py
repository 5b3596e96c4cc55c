"""Firewall Analyzer - Was this IP blocked on a host, and by what?

One strategy per panel type. Every strategy runs the CSF battery; the
panel decides which mail logs are grepped and whether BFM and
ModSecurity are consulted. Strategies are picked once, by
FirewallAnalyzerFactory, from ``Host.panel``.

The result is an immutable AnalysisResult. Only session failures are
fatal: a command that prints nothing simply leaves its source empty.
"""

import ipaddress
import logging

from unblock_doctor.config import Settings
from unblock_doctor.connector.ssh import RemoteCommandRunner, SshSession
from unblock_doctor.exceptions import InvalidIpError, UnsupportedPanelError
from unblock_doctor.model.analysis import LOG_SOURCES, AnalysisResult
from unblock_doctor.model.host import Host, PanelType
from unblock_doctor.parser.block_patterns import (
    detect_block_sources,
    extract_blocking_details,
    filter_exact_ip_lines,
)
from unblock_doctor.parser.modsecurity import summarize_modsecurity
from unblock_doctor.scanner.commands import CommandCatalog

logger = logging.getLogger(__name__)

# Operation -> log source, for the battery every panel runs.
CSF_BATTERY = (
    ("csf", "csf"),
    ("csf_deny_check", "csf_deny"),
    ("csf_tempip_check", "csf_tempip"),
)

# Sources whose remote grep is a substring match and must be narrowed
# to lines that start with the exact IP.
_EXACT_IP_SOURCES = ("csf_deny", "csf_tempip", "da_bfm")


def validate_ip(ip: str) -> str:
    """Return ``ip`` stripped, or raise InvalidIpError."""
    candidate = (ip or "").strip()
    try:
        ipaddress.ip_address(candidate)
    except ValueError as e:
        raise InvalidIpError(ip) from e
    return candidate


class FirewallAnalyzer:
    """Base strategy: CSF battery only.

    Subclasses extend PANEL_BATTERY with their own (operation, source)
    pairs and may override ``_annotate`` to add panel markers.
    """

    panel = PanelType.UNKNOWN
    PANEL_BATTERY: tuple[tuple[str, str], ...] = ()

    def __init__(self, runner: RemoteCommandRunner, catalog: CommandCatalog) -> None:
        self.runner = runner
        self.catalog = catalog

    def analyze(self, host: Host, ip: str) -> AnalysisResult:
        """Run the battery against ``host`` and build the verdict.

        Raises:
            InvalidIpError: ``ip`` is not an IPv4/IPv6 literal.
            ConnectionSetupError: The key file could not be written.
            ConnectionFailedError: The SSH session failed.
            UnknownOperationError: The catalog lacks a battery operation.
        """
        ip = validate_ip(ip)
        logger.info(
            "Analyzing %s on host %s (%s, panel=%s)",
            ip,
            host.id,
            host.address,
            host.panel_type.value,
        )

        logs = {source: "" for source in LOG_SOURCES}
        with self.runner.create_session(host) as session:
            session.connect()
            for operation, source in CSF_BATTERY + self.PANEL_BATTERY:
                logs[source] = self._collect(session, operation, ip)

        logs = self._post_process(logs, ip)

        block_sources = detect_block_sources(logs)
        analysis = {
            "panel": host.panel_type.value,
            "block_sources": block_sources,
            "blocking_details": extract_blocking_details(logs, block_sources),
            "warnings": [],
        }
        self._annotate(host, analysis)

        result = AnalysisResult(
            ip=ip,
            blocked=bool(block_sources),
            logs=logs,
            analysis=analysis,
        )
        logger.info(
            "Analysis of %s on host %s: blocked=%s sources=%s",
            ip,
            host.id,
            result.blocked,
            ",".join(block_sources) or "-",
        )
        return result

    def _collect(self, session: SshSession, operation: str, ip: str) -> str:
        command = self.catalog.require(operation, ip)
        return session.execute(command)

    def _post_process(self, logs: dict[str, str], ip: str) -> dict[str, str]:
        processed = dict(logs)
        for source in _EXACT_IP_SOURCES:
            if processed[source]:
                processed[source] = filter_exact_ip_lines(processed[source], ip)
        if processed["mod_security"]:
            processed["mod_security"] = summarize_modsecurity(processed["mod_security"], ip)
        return processed

    def _annotate(self, host: Host, analysis: dict) -> None:
        """Hook for panel-specific markers."""


class CpanelAnalyzer(FirewallAnalyzer):
    """cPanel: CSF plus the cPanel exim and dovecot logs."""

    panel = PanelType.CPANEL
    PANEL_BATTERY = (
        ("exim_cpanel", "exim"),
        ("dovecot_cpanel", "dovecot"),
    )


class DirectAdminAnalyzer(FirewallAnalyzer):
    """DirectAdmin: CSF, mail logs, the BFM blacklist and ModSecurity."""

    panel = PanelType.DIRECTADMIN
    PANEL_BATTERY = (
        ("exim_directadmin", "exim"),
        ("dovecot_directadmin", "dovecot"),
        ("da_bfm_check", "da_bfm"),
        ("mod_security", "mod_security"),
    )


class UnknownPanelAnalyzer(FirewallAnalyzer):
    """Anything else: CSF only, marked as an unsupported panel."""

    def _annotate(self, host: Host, analysis: dict) -> None:
        marker = UnsupportedPanelError(host.panel)
        logger.warning("Host %s: %s", host.id, marker)
        analysis["unsupported_panel"] = True
        analysis["warnings"].append(str(marker))


class FirewallAnalyzerFactory:
    """Selects the analyzer strategy for a host's panel."""

    STRATEGIES: dict[PanelType, type[FirewallAnalyzer]] = {
        PanelType.CPANEL: CpanelAnalyzer,
        PanelType.DIRECTADMIN: DirectAdminAnalyzer,
        PanelType.UNKNOWN: UnknownPanelAnalyzer,
    }

    def __init__(
        self,
        runner: RemoteCommandRunner,
        catalog: CommandCatalog | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.runner = runner
        self.catalog = catalog or CommandCatalog(settings)

    def create_for_host(self, host: Host) -> FirewallAnalyzer:
        strategy = self.STRATEGIES.get(host.panel_type, UnknownPanelAnalyzer)
        return strategy(self.runner, self.catalog)
