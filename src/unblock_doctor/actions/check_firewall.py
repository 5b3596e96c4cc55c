"""Check Firewall Action - Analyze, optionally unblock, report.

CONTRACT:
- read_only: False (the unblock step edits csf and the BFM blacklist)
- requires_backup: False
- rollback_support: False
- prerequisites: host registered, caller authorized

Every call ends in a CheckResult. Errors are logged and folded into the
result; nothing escapes to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from unblock_doctor.actions.report import ActionContract, ReportGenerator
from unblock_doctor.analyzer.firewall import FirewallAnalyzerFactory, validate_ip
from unblock_doctor.config import Settings
from unblock_doctor.connector.ssh import RemoteCommandRunner
from unblock_doctor.engine.diagnostics import ConnectionDiagnosis, diagnose_connection_error
from unblock_doctor.engine.unblocker import FirewallUnblocker
from unblock_doctor.exceptions import (
    AccessDeniedError,
    CommandExecutionError,
    ConnectionFailedError,
    ConnectionSetupError,
    HostNotFoundError,
    InvalidInputError,
    UnblockDoctorError,
)
from unblock_doctor.model.analysis import AnalysisResult, RemediationOutcome
from unblock_doctor.model.host import Host
from unblock_doctor.scanner.commands import CSF_VERSION_COMMAND, CommandCatalog
from unblock_doctor.storage.models import STATUS_UNBLOCK_FAILED
from unblock_doctor.storage.repositories import HostRepository

logger = logging.getLogger(__name__)

Authorizer = Callable[[Host, str], bool]


@dataclass
class CheckResult:
    """Single verdict of a check (or connection test)."""

    success: bool
    message: str
    error_type: str | None = None
    diagnosis: ConnectionDiagnosis | None = None
    report_id: int | None = None
    status: str | None = None
    analysis: AnalysisResult | None = None
    outcome: RemediationOutcome | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "error_type": self.error_type,
            "diagnosis": self.diagnosis.to_dict() if self.diagnosis else None,
            "report_id": self.report_id,
            "status": self.status,
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "unblock": self.outcome.to_dict() if self.outcome else None,
        }


class CheckFirewallAction:
    """Orchestrates analyzer, unblocker and report generator for one IP."""

    CONTRACT = ActionContract(
        read_only=False,
        requires_backup=False,
        rollback_support=False,
        prerequisites=["host registered", "caller authorized"],
    )

    def __init__(
        self,
        settings: Settings | None = None,
        hosts: HostRepository | None = None,
        runner: RemoteCommandRunner | None = None,
        reports: ReportGenerator | None = None,
        authorize: Authorizer | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.hosts = hosts or HostRepository()
        self.runner = runner or RemoteCommandRunner(self.settings)
        self.catalog = CommandCatalog(self.settings)
        self.factory = FirewallAnalyzerFactory(self.runner, self.catalog)
        self.unblocker = FirewallUnblocker(self.runner, self.catalog)
        self.reports = reports or ReportGenerator(settings=self.settings)
        self.authorize = authorize

    def execute(self, host_id: int, ip: str, unblock: bool = True) -> CheckResult:
        """Check ``ip`` on host ``host_id`` and unblock it if requested."""
        try:
            return self._execute(host_id, ip, unblock)
        except ConnectionFailedError as e:
            e.ip = e.ip or ip
            diagnosis = diagnose_connection_error(e)
            logger.error(
                "Firewall check of %s on host %s failed to connect (critical=%s): %s",
                ip,
                host_id,
                diagnosis.critical,
                e,
            )
            return self._failure(e, diagnosis)
        except (InvalidInputError, AccessDeniedError) as e:
            logger.warning("Firewall check of %s on host %s rejected: %s", ip, host_id, e)
            return self._failure(e)
        except UnblockDoctorError as e:
            logger.error("Firewall check of %s on host %s failed: %s", ip, host_id, e)
            return self._failure(e)
        except Exception as e:
            logger.exception("Unexpected error checking %s on host %s", ip, host_id)
            return self._failure(e)

    def probe_connection(self, host_id: int) -> CheckResult:
        """Open a session to the host and run ``csf -v``."""
        try:
            host = self._load_host(host_id)
            with self.runner.create_session(host) as session:
                version = session.execute(CSF_VERSION_COMMAND)
        except ConnectionFailedError as e:
            return self._failure(e, diagnose_connection_error(e))
        except UnblockDoctorError as e:
            return self._failure(e)
        except Exception as e:
            logger.exception("Unexpected error testing connection to host %s", host_id)
            return self._failure(e)

        logger.info("Connection test to host %s succeeded: %s", host_id, version)
        return CheckResult(success=True, message=version or "Connected (no csf version output)")

    def _execute(self, host_id: int, ip: str, unblock: bool) -> CheckResult:
        ip = validate_ip(ip)
        host = self._load_host(host_id)

        if self.authorize is not None and not self.authorize(host, ip):
            raise AccessDeniedError(f"Access denied to host {host_id} for IP {ip}")

        analyzer = self.factory.create_for_host(host)
        analysis = analyzer.analyze(host, ip)

        outcome: RemediationOutcome | None = None
        unblock_error: BaseException | None = None
        if unblock and analysis.blocked:
            try:
                outcome = self.unblocker.unblock(host, ip, analysis)
            except (CommandExecutionError, ConnectionFailedError, ConnectionSetupError) as e:
                logger.error("Unblock of %s on host %s failed: %s", ip, host_id, e)
                unblock_error = e

        report = self.reports.generate(
            host_id,
            analysis,
            outcome,
            unblock_error=str(unblock_error) if unblock_error else None,
        )

        if unblock_error is not None:
            diagnosis = None
            if isinstance(unblock_error, ConnectionFailedError):
                unblock_error.ip = unblock_error.ip or ip
                diagnosis = diagnose_connection_error(unblock_error)
            result = self._failure(unblock_error, diagnosis)
            result.report_id = report.id
            result.status = report.status
            result.analysis = analysis
            return result

        return CheckResult(
            success=report.status != STATUS_UNBLOCK_FAILED,
            message=self._message(analysis, outcome, unblock),
            report_id=report.id,
            status=report.status,
            analysis=analysis,
            outcome=outcome,
        )

    def _load_host(self, host_id: int) -> Host:
        record = self.hosts.get_by_id(host_id)
        if record is None:
            raise HostNotFoundError(host_id)
        return record.to_host()

    @staticmethod
    def _message(analysis: AnalysisResult, outcome: RemediationOutcome | None, unblock: bool) -> str:
        if not analysis.blocked:
            return f"IP {analysis.ip} is not blocked"
        sources = ", ".join(analysis.block_sources)
        if not unblock:
            return f"IP {analysis.ip} is blocked by: {sources} (unblock not requested)"
        if outcome is None or not outcome.performed:
            return f"IP {analysis.ip} is blocked by: {sources}; no remediation rule applies"
        if outcome.status()["overall_success"]:
            return f"IP {analysis.ip} unblocked ({outcome.rule_applied})"
        return f"IP {analysis.ip} could not be fully unblocked ({outcome.rule_applied})"

    @staticmethod
    def _failure(error: BaseException, diagnosis: ConnectionDiagnosis | None = None) -> CheckResult:
        return CheckResult(
            success=False,
            message=str(error),
            error_type=type(error).__name__,
            diagnosis=diagnosis,
        )
