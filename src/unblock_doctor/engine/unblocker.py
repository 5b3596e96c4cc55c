"""Firewall Unblocker - Rule-driven remediation of a blocked IP.

Which subsystems are touched depends only on the analysis:

    CSF block  BFM block  operations
    ---------  ---------  ----------------------------------------------
    yes        yes        CSF unblock + temporal whitelist, BFM removal
    yes        no         CSF unblock + temporal whitelist
    no         yes        BFM removal (no CSF whitelist)
    no         no         nothing

CSF unblock is ``csf -dr``, plus ``csf -tr`` when the IP sits in
csf.tempip. BFM only exists on DirectAdmin hosts. The blacklist is never edited in
place on the remote side: it is fetched, filtered here, written back
whole and re-checked. Two concurrent removals against the same host
race on that file; the last write wins.
"""

import logging
import re

from unblock_doctor.connector.ssh import CommandResult, RemoteCommandRunner, SshSession
from unblock_doctor.exceptions import (
    CommandExecutionError,
    ConnectionFailedError,
    CsfRemediationError,
)
from unblock_doctor.model.analysis import (
    AnalysisResult,
    OperationResult,
    RemediationOutcome,
    SubsystemOutcome,
)
from unblock_doctor.model.host import Host, PanelType
from unblock_doctor.scanner.commands import BFM_NOT_FOUND_MARKER, CommandCatalog

logger = logging.getLogger(__name__)

# Substrings of ``csf -g`` output that count as a CSF block for remediation.
CSF_REMEDIATION_MARKERS = ("DENYIN", "DROP", "Temporary Blocks")

RULE_DESCRIPTIONS = {
    (True, True): "CSF blocks + BFM blocks: CSF unblock/whitelist + BFM removal",
    (True, False): "CSF blocks only: CSF unblock/whitelist",
    (False, True): "BFM blocks only: BFM removal (no CSF temporal whitelist)",
    (False, False): "No blocks detected: no operations performed",
}


def has_csf_block(analysis: AnalysisResult) -> bool:
    csf = analysis.log("csf")
    if any(marker in csf for marker in CSF_REMEDIATION_MARKERS):
        return True
    return bool(analysis.log("csf_deny").strip() or analysis.log("csf_tempip").strip())


def csf_steps(analysis: AnalysisResult) -> tuple[str, ...]:
    """CSF catalog operations to run, in order.

    ``csf -dr`` leaves csf.tempip alone, so a temporary deny needs its
    own ``csf -tr`` before the whitelist goes in.
    """
    if analysis.log("csf_tempip").strip():
        return ("unblock_permanent", "unblock_temporary", "whitelist")
    return ("unblock_permanent", "whitelist")


def has_bfm_block(host: Host, analysis: AnalysisResult) -> bool:
    if host.panel_type is not PanelType.DIRECTADMIN:
        return False
    return bool(analysis.log("da_bfm").strip())


def bfm_line_regex(ip: str) -> re.Pattern[str]:
    """Local twin of the remote ``^ip(\\s|$)`` blacklist pattern."""
    return re.compile("^" + re.escape(ip) + r"(\s|$)")


def filter_blacklist(content: str, ip: str) -> tuple[list[str], bool]:
    """Drop the entries for ``ip`` from blacklist content.

    Returns:
        (kept non-empty lines, whether any entry for ``ip`` was found)
    """
    pattern = bfm_line_regex(ip)
    kept: list[str] = []
    found = False
    for raw in content.splitlines():
        line = raw.strip()
        if not line:
            continue
        if pattern.match(line):
            found = True
            continue
        kept.append(line)
    return kept, found


class FirewallUnblocker:
    """Applies the remediation rule table over one SSH session."""

    def __init__(self, runner: RemoteCommandRunner, catalog: CommandCatalog) -> None:
        self.runner = runner
        self.catalog = catalog

    def plan(self, host: Host, analysis: AnalysisResult) -> tuple[bool, bool]:
        """Return (run CSF remediation, run BFM removal)."""
        return has_csf_block(analysis), has_bfm_block(host, analysis)

    def unblock(self, host: Host, ip: str, analysis: AnalysisResult) -> RemediationOutcome:
        """Remediate ``ip`` on ``host`` according to ``analysis``.

        Raises:
            CsfRemediationError: CSF unblock or whitelist failed.
            CommandExecutionError: A BFM sub-step failed.
            ConnectionSetupError: The key file could not be written.
            ConnectionFailedError: The session could not be opened.
        """
        do_csf, do_bfm = self.plan(host, analysis)
        rule = RULE_DESCRIPTIONS[(do_csf, do_bfm)]
        logger.info("Unblocking %s on host %s: %s", ip, host.id, rule)

        if not do_csf and not do_bfm:
            return RemediationOutcome(ip=ip, host_id=host.id, rule_applied=rule)

        csf_outcome = bfm_outcome = None
        with self.runner.create_session(host) as session:
            session.connect()
            if do_csf:
                csf_outcome = self._remediate_csf(session, host, ip, analysis)
            if do_bfm:
                bfm_outcome = self._remediate_bfm(session, host, ip)

        outcome = RemediationOutcome(
            ip=ip,
            host_id=host.id,
            rule_applied=rule,
            csf=csf_outcome,
            bfm=bfm_outcome,
        )
        logger.info("Unblock of %s on host %s finished: %s", ip, host.id, outcome.status())
        return outcome

    # ------------------------------------------------------------------
    # CSF
    # ------------------------------------------------------------------

    def _remediate_csf(
        self, session: SshSession, host: Host, ip: str, analysis: AnalysisResult
    ) -> SubsystemOutcome:
        operations: list[OperationResult] = []
        for step in csf_steps(analysis):
            command = self.catalog.require(step, ip)
            try:
                result = self._run_checked(session, command, step)
            except (CommandExecutionError, ConnectionFailedError) as e:
                logger.error("CSF %s of %s failed on host %s: %s", step, ip, host.id, e)
                raise CsfRemediationError(
                    f"Failed to perform CSF operations for IP {ip}: {e}",
                    command=command,
                    output=getattr(e, "output", None),
                    error_output=getattr(e, "error_output", None) or str(e),
                    step=step,
                    completed_steps=[op.step for op in operations],
                ) from e
            operations.append(OperationResult(step=step, command=command, output=result.stdout.strip()))

        logger.info("CSF unblock and %ss whitelist done for %s on host %s", self.catalog.whitelist_ttl, ip, host.id)
        return SubsystemOutcome(subsystem="csf", operations=tuple(operations))

    # ------------------------------------------------------------------
    # BFM
    # ------------------------------------------------------------------

    def _remediate_bfm(self, session: SshSession, host: Host, ip: str) -> SubsystemOutcome:
        operations: list[OperationResult] = []

        def run(step: str, command: str) -> CommandResult:
            try:
                return self._run_checked(session, command, step)
            except (CommandExecutionError, ConnectionFailedError) as e:
                completed = [op.step for op in operations]
                logger.error(
                    "BFM %s of %s failed on host %s after %s: %s",
                    step,
                    ip,
                    host.id,
                    completed or "no steps",
                    e,
                )
                raise CommandExecutionError(
                    f"Failed to process BFM blacklist for IP {ip} at step {step!r}: {e}",
                    command=command,
                    output=getattr(e, "output", None),
                    error_output=getattr(e, "error_output", None) or str(e),
                    step=step,
                    completed_steps=completed,
                ) from e

        # 1. fetch
        fetch_command = self.catalog.require("da_bfm_fetch", ip)
        content = run("fetch", fetch_command).stdout
        operations.append(OperationResult(step="fetch", command=fetch_command))

        # 2. filter
        kept, found = filter_blacklist(content, ip)
        operations.append(
            OperationResult(
                step="filter",
                command="",
                note=None if found else BFM_NOT_FOUND_MARKER,
            )
        )

        # 3. rewrite
        if found:
            rewrite_command = self.catalog.bfm_rewrite("\n".join(kept))
            run("rewrite", rewrite_command)
            operations.append(OperationResult(step="rewrite", command=rewrite_command))
            logger.info("BFM blacklist on host %s rewritten with %d entries", host.id, len(kept))

        # 4. verify
        verify_command = self.catalog.bfm_verify(ip)
        verify_output = run("verify", verify_command).stdout.strip()
        pattern = bfm_line_regex(ip)
        removed = not any(pattern.match(line.strip()) for line in verify_output.splitlines())
        operations.append(OperationResult(step="verify", command=verify_command, output=verify_output))

        if not removed:
            logger.warning("BFM verification still lists %s on host %s", ip, host.id)
        return SubsystemOutcome(subsystem="bfm", operations=tuple(operations), removed=removed)

    @staticmethod
    def _run_checked(session: SshSession, command: str, step: str) -> CommandResult:
        result = session.run(command)
        if not result.success:
            raise CommandExecutionError(
                f"Remote command exited with status {result.exit_code}",
                command=command,
                output=result.stdout,
                error_output=result.stderr,
                step=step,
            )
        return result
