"""Block Pattern Detectors - Which log sources say the IP is blocked.

Each source has a small keyword list. Empty or whitespace-only text is
never a block. ``detect_block_sources`` over an analyzer's ``logs`` map
is what decides ``AnalysisResult.blocked``.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from unblock_doctor.parser.csf_output import parse_deny_line, summarize_csf_output

_LEADING_TOKEN_RE = re.compile(r"[\s|#]+")
_CSF_RULE_RE = re.compile(r"^(?:filter|mangle|raw|nat)\s+(\S+)\s+\d+\s+\d+\s+\d+\s+(\S+)")
_BFM_TIMESTAMP_RE = re.compile(r"\b(\d{14})\b")


@dataclass(frozen=True)
class BlockDetector:
    """Keyword detector for one log source.

    Attributes:
        source: Name reported in ``block_sources``.
        log_key: Key of the analyzer ``logs`` map it reads.
        keywords: Substrings that indicate a block.
        case_sensitive: Match keywords case-sensitively.
        any_content: Any non-empty output is a block (grep-filtered files).
        negative: Substrings that cancel ``any_content``.
    """

    source: str
    log_key: str
    keywords: tuple[str, ...] = ()
    case_sensitive: bool = False
    any_content: bool = False
    negative: tuple[str, ...] = ()

    def matches_line(self, line: str) -> bool:
        if self.case_sensitive:
            return any(k in line for k in self.keywords)
        lowered = line.lower()
        return any(k.lower() in lowered for k in self.keywords)

    def detect(self, text: str | None) -> bool:
        if not text or not text.strip():
            return False
        if self.any_content:
            return not any(n in text for n in self.negative)
        return self.matches_line(text)


DETECTORS: tuple[BlockDetector, ...] = (
    BlockDetector(
        "csf",
        "csf",
        ("DENYIN", "DENYOUT", "DROP", "csf.deny:", "Temporary Blocks"),
        case_sensitive=True,
    ),
    BlockDetector("csf_deny", "csf_deny", any_content=True),
    BlockDetector("csf_tempip", "csf_tempip", any_content=True),
    BlockDetector("da_bfm", "da_bfm", any_content=True, negative=("No matches",)),
    BlockDetector(
        "exim",
        "exim",
        ("rejected", "denied", "authentication failed", "authenticator failed", "incorrect authentication data"),
    ),
    BlockDetector("dovecot", "dovecot", ("auth failed", "authentication failure", "login failed")),
    BlockDetector(
        "modsecurity",
        "mod_security",
        ("access denied", "attack detected", "rule triggered", "rules:"),
    ),
)

_DETECTORS_BY_SOURCE = {d.source: d for d in DETECTORS}


def detect_block_sources(logs: dict[str, str]) -> list[str]:
    """Return block sources in detector order."""
    return [d.source for d in DETECTORS if d.detect(logs.get(d.log_key, ""))]


def leading_token(line: str) -> str:
    """First whitespace-, pipe- or hash-delimited token of a line."""
    return _LEADING_TOKEN_RE.split(line.strip(), maxsplit=1)[0]


def filter_exact_ip_lines(output: str, ip: str) -> str:
    """Keep only lines whose leading token is exactly ``ip``.

    Remote greps match substrings, so 10.192.168.1.100 turns up when
    looking for 192.168.1.100. This drops those lines.
    """
    kept = [
        line.strip()
        for line in output.splitlines()
        if line.strip() and leading_token(line) == ip
    ]
    return "\n".join(kept)


# ---------------------------------------------------------------------------
# Blocking details
# ---------------------------------------------------------------------------


def detect_csf_block_type(output: str) -> str:
    if "DENYIN" in output:
        return "deny_input"
    if "DENYOUT" in output:
        return "deny_output"
    if "Temporary" in output:
        return "temporary"
    return "unknown"


def extract_csf_rules(output: str) -> dict[str, str]:
    """Map chain -> target from iptables rows in ``csf -g`` output."""
    rules: dict[str, str] = {}
    for line in output.splitlines():
        if m := _CSF_RULE_RE.match(line.strip()):
            rules[m.group(1)] = m.group(2)
    return rules


def parse_bfm_timestamp(entry: str) -> str | None:
    """BFM stores ``YmdHis`` after the IP; render it as ``Y-m-d H:M:S``."""
    m = _BFM_TIMESTAMP_RE.search(entry)
    if m is None:
        return None
    try:
        return datetime.strptime(m.group(1), "%Y%m%d%H%M%S").strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None


def _lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def _service_details(source: str, text: str) -> dict[str, Any]:
    detector = _DETECTORS_BY_SOURCE[source]
    entries = _lines(text)
    patterns = list(dict.fromkeys(line for line in entries if detector.matches_line(line)))
    return {"service": source, "log_entries": entries, "block_patterns": patterns}


def extract_blocking_details(logs: dict[str, str], block_sources: list[str]) -> dict[str, Any]:
    """Structured details for each block source."""
    details: dict[str, Any] = {}

    for source in block_sources:
        if source == "csf":
            csf = logs.get("csf", "")
            details["csf"] = {
                **summarize_csf_output(csf),
                "type": detect_csf_block_type(csf),
                "rules": extract_csf_rules(csf),
            }
        elif source == "csf_deny":
            details["csf_deny"] = {
                "entries": [parse_deny_line(line).to_dict() for line in _lines(logs.get("csf_deny", ""))]
            }
        elif source == "csf_tempip":
            details["csf_tempip"] = {"entries": _lines(logs.get("csf_tempip", ""))}
        elif source == "da_bfm":
            entries = _lines(logs.get("da_bfm", ""))
            first = entries[0] if entries else ""
            details["bfm"] = {
                "blacklist_entry": first,
                "timestamp": parse_bfm_timestamp(first),
            }
        elif source in ("exim", "dovecot", "modsecurity"):
            log_key = _DETECTORS_BY_SOURCE[source].log_key
            details[source] = _service_details(source, logs.get(log_key, ""))

    return details
