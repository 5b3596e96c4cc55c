"""Analysis and remediation value objects.

Both are built once and returned; nothing mutates them afterwards.
"""

import copy
from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

# Log sources an analyzer may fill. A missing or empty entry means
# "no output / not applicable for this panel".
LOG_SOURCES = (
    "csf",
    "csf_deny",
    "csf_tempip",
    "da_bfm",
    "exim",
    "dovecot",
    "mod_security",
)


@dataclass(frozen=True)
class AnalysisResult:
    """Verdict of one firewall analysis.

    Attributes:
        ip: Target IP that was analyzed.
        blocked: True iff ``analysis["block_sources"]`` is non-empty.
        logs: Raw (or post-processed) command output keyed by source.
        analysis: Derived facts: ``block_sources``, ``blocking_details``,
            and panel markers such as ``unsupported_panel``.
    """

    ip: str
    blocked: bool
    logs: Mapping[str, str] = field(default_factory=dict)
    analysis: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Detach from the caller's dicts and expose read-only views.
        object.__setattr__(self, "logs", MappingProxyType(dict(self.logs)))
        object.__setattr__(self, "analysis", MappingProxyType(copy.deepcopy(dict(self.analysis))))
        if self.blocked != bool(self.block_sources):
            raise ValueError("blocked must be True iff block_sources is non-empty")

    @property
    def block_sources(self) -> list[str]:
        return list(self.analysis.get("block_sources", []))

    @property
    def unsupported_panel(self) -> bool:
        return bool(self.analysis.get("unsupported_panel", False))

    def log(self, source: str) -> str:
        """Output for a source, or an empty string."""
        return self.logs.get(source, "") or ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "ip": self.ip,
            "blocked": self.blocked,
            "logs": dict(self.logs),
            "analysis": dict(self.analysis),
        }


@dataclass(frozen=True)
class OperationResult:
    """One remote command run during remediation."""

    step: str
    command: str
    output: str = ""
    success: bool = True
    note: str | None = None


@dataclass(frozen=True)
class SubsystemOutcome:
    """Remediation of one subsystem (``csf`` or ``bfm``).

    ``removed`` is only set for BFM, from the post-rewrite verification.
    """

    subsystem: str
    operations: tuple[OperationResult, ...] = ()
    success: bool = True
    removed: bool | None = None

    @property
    def effective_success(self) -> bool:
        if self.removed is None:
            return self.success
        return self.success and self.removed


@dataclass(frozen=True)
class RemediationOutcome:
    """Everything the unblocker did for one (host, ip) pair.

    A subsystem left as None was not attempted.
    """

    ip: str
    host_id: int
    rule_applied: str
    csf: SubsystemOutcome | None = None
    bfm: SubsystemOutcome | None = None

    @property
    def subsystems(self) -> list[SubsystemOutcome]:
        return [s for s in (self.csf, self.bfm) if s is not None]

    @property
    def performed(self) -> bool:
        return bool(self.subsystems)

    def status(self) -> dict[str, Any]:
        """Summarize success per subsystem and overall."""
        operations: list[str] = []
        if self.csf is not None:
            operations.append("csf_unblock")
            if any(op.step == "unblock_temporary" for op in self.csf.operations):
                operations.append("csf_temporary_unblock")
            operations.append("csf_whitelist")
        if self.bfm is not None:
            operations.append("bfm_removal")

        csf_success = self.csf.effective_success if self.csf is not None else None
        bfm_success = self.bfm.effective_success if self.bfm is not None else None

        return {
            "overall_success": all(s.effective_success for s in self.subsystems),
            "csf_success": csf_success,
            "bfm_success": bfm_success,
            "operations_performed": operations,
            "rule_applied": self.rule_applied,
        }

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status()
        return data
