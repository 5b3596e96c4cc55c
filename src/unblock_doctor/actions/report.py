"""Report Action - Persist and render firewall reports.

CONTRACT:
- read_only: True (local database only, never the remote host)
- requires_backup: False
- rollback_support: N/A
- prerequisites: storage initialized (init_db)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from unblock_doctor.config import Settings
from unblock_doctor.exceptions import UnblockDoctorError
from unblock_doctor.model.analysis import AnalysisResult, RemediationOutcome
from unblock_doctor.storage.models import (
    STATUS_BLOCKS_DETECTED,
    STATUS_NO_BLOCKS,
    STATUS_UNBLOCK_FAILED,
    STATUS_UNBLOCKED,
    ReportRecord,
)
from unblock_doctor.storage.repositories import ReportRepository

logger = logging.getLogger(__name__)


@dataclass
class ActionContract:
    """Explicit contract for an action."""

    read_only: bool
    requires_backup: bool
    rollback_support: bool
    prerequisites: list[str]


def determine_status(
    analysis: AnalysisResult,
    outcome: RemediationOutcome | None,
    unblock_error: str | None = None,
) -> str:
    if unblock_error:
        return STATUS_UNBLOCK_FAILED
    if not analysis.blocked:
        return STATUS_NO_BLOCKS
    if outcome is None or not outcome.performed:
        return STATUS_BLOCKS_DETECTED
    if outcome.status()["overall_success"]:
        return STATUS_UNBLOCKED
    return STATUS_UNBLOCK_FAILED


def summarize_logs(logs: Mapping[str, str]) -> dict[str, dict[str, Any]]:
    """Non-empty log sources with their line count and size."""
    summary: dict[str, dict[str, Any]] = {}
    for source, content in logs.items():
        if not content or not content.strip():
            continue
        summary[source] = {
            "content": content,
            "lines": len(content.splitlines()),
            "size": len(content.encode("utf-8")),
        }
    return summary


class ReportGenerator:
    """Turns an analysis (and optional remediation) into a stored report."""

    CONTRACT = ActionContract(
        read_only=True,
        requires_backup=False,
        rollback_support=False,
        prerequisites=["storage initialized"],
    )

    STATUS_STYLES = {
        STATUS_NO_BLOCKS: "green",
        STATUS_BLOCKS_DETECTED: "yellow",
        STATUS_UNBLOCKED: "green",
        STATUS_UNBLOCK_FAILED: "red",
    }

    def __init__(
        self,
        repository: ReportRepository | None = None,
        settings: Settings | None = None,
        console: Console | None = None,
    ) -> None:
        self.repository = repository or ReportRepository()
        self.settings = settings or Settings()
        self.console = console or Console()

    def build_analysis(
        self,
        analysis: AnalysisResult,
        outcome: RemediationOutcome | None,
        unblock_error: str | None = None,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {
            "was_blocked": analysis.blocked,
            "block_sources": analysis.block_sources,
            "blocking_details": analysis.analysis.get("blocking_details", {}),
            "analysis_timestamp": datetime.now(timezone.utc).isoformat(),
            "panel": analysis.analysis.get("panel"),
            "warnings": list(analysis.analysis.get("warnings", [])),
            "unsupported_panel": analysis.unsupported_panel,
            "unblock_performed": bool(outcome and outcome.performed),
            "unblock_status": outcome.status() if outcome else None,
        }
        if outcome is not None and outcome.performed:
            data["unblock_operations"] = outcome.to_dict()
        if unblock_error:
            data["unblock_error"] = unblock_error
        return data

    def generate(
        self,
        host_id: int,
        analysis: AnalysisResult,
        outcome: RemediationOutcome | None = None,
        unblock_error: str | None = None,
    ) -> ReportRecord:
        """Persist a report and return the stored record."""
        status = determine_status(analysis, outcome, unblock_error)
        report_id = self.repository.create(
            ip=analysis.ip,
            host_id=host_id,
            status=status,
            analysis=self.build_analysis(analysis, outcome, unblock_error),
            logs=summarize_logs(analysis.logs),
        )
        logger.info("Report %s created for %s on host %s: %s", report_id, analysis.ip, host_id, status)

        record = self.repository.get_by_id(report_id)
        if record is None:
            raise UnblockDoctorError(f"Report {report_id} was not readable after insert")
        return record

    def prune_expired(self) -> int:
        """Delete reports older than ``report_expiration``."""
        deleted = self.repository.delete_older_than(self.settings.report_expiration)
        if deleted:
            logger.info("Pruned %d expired report(s)", deleted)
        return deleted

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, record: ReportRecord) -> None:
        """Print a stored report."""
        analysis = record.analysis
        style = self.STATUS_STYLES.get(record.status, "white")

        self.console.print()
        self.console.print(
            Panel.fit(
                f"Report #{record.id}: {escape(record.ip)} on host {record.host_id}",
                style="bold cyan",
            )
        )
        self.console.print(f"   Status: [{style}]{record.status}[/]")
        self.console.print(f"   Created: {record.created_at}")
        if analysis.get("panel"):
            self.console.print(f"   Panel: {analysis['panel']}")

        sources = analysis.get("block_sources") or []
        if sources:
            self.console.print(f"   [yellow]Blocked by:[/] {', '.join(sources)}")
        else:
            self.console.print("   [green]No blocks found.[/]")

        for warning in analysis.get("warnings") or []:
            self.console.print(f"   [yellow]! {escape(warning)}[/]")

        self._render_details(analysis.get("blocking_details") or {})
        self._render_unblock(analysis)
        self._render_logs(record.logs)

    def render_list(self, records: list[ReportRecord]) -> None:
        if not records:
            self.console.print("[dim]No reports stored.[/]")
            return

        table = Table(show_header=True)
        table.add_column("ID", justify="right")
        table.add_column("IP")
        table.add_column("Host")
        table.add_column("Status")
        table.add_column("Created")
        for record in records:
            style = self.STATUS_STYLES.get(record.status, "white")
            table.add_row(
                str(record.id),
                record.ip,
                str(record.host_id) if record.host_id is not None else "-",
                f"[{style}]{record.status}[/]",
                record.created_at,
            )
        self.console.print(table)

    def _render_details(self, details: dict[str, Any]) -> None:
        csf = details.get("csf")
        if csf and csf.get("block_type") == "csf.deny":
            self.console.print("   [dim]CSF deny:[/]")
            if csf.get("reason_short"):
                self.console.print(f"      Reason: {escape(csf['reason_short'])}")
            if csf.get("attempts") is not None:
                self.console.print(f"      Attempts: {csf['attempts']}")
            if csf.get("location"):
                self.console.print(f"      Location: {escape(csf['location'])}")
            if csf.get("blocked_since"):
                self.console.print(f"      Since: {escape(csf['blocked_since'])}")
        elif csf:
            self.console.print(f"   [dim]CSF:[/] firewall rules ({csf.get('type')})")

        bfm = details.get("bfm")
        if bfm:
            since = f" since {bfm['timestamp']}" if bfm.get("timestamp") else ""
            self.console.print(f"   [dim]BFM:[/] {escape(bfm.get('blacklist_entry', ''))}{since}")

    def _render_unblock(self, analysis: dict[str, Any]) -> None:
        status = analysis.get("unblock_status")
        if status:
            self.console.print(f"   [dim]Rule:[/] {escape(status.get('rule_applied', ''))}")
            for subsystem in ("csf", "bfm"):
                ok = status.get(f"{subsystem}_success")
                if ok is None:
                    continue
                mark = "[green]OK[/]" if ok else "[red]FAILED[/]"
                self.console.print(f"      {subsystem.upper()}: {mark}")
        if analysis.get("unblock_error"):
            self.console.print(f"   [red]Unblock error:[/] {escape(analysis['unblock_error'])}")

    def _render_logs(self, logs: dict[str, Any]) -> None:
        if not logs:
            return
        table = Table(show_header=True, title="Log sources")
        table.add_column("Source")
        table.add_column("Lines", justify="right")
        table.add_column("Excerpt")
        for source, entry in logs.items():
            content = entry.get("content", "")
            first = content.strip().splitlines()[0] if content.strip() else ""
            table.add_row(source, str(entry.get("lines", 0)), escape(first[:120]))
        self.console.print(table)
