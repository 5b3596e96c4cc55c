"""CSF Output Parser - Structured facts from ``csf`` output.

Handles two inputs:
1. A single ``csf.deny`` line, e.g.
   ``158.173.23.58 # lfd: (smtpauth) Failed SMTP AUTH login from 158.173.23.58
   (GB/United Kingdom/-): 5 in the last 3600 secs - Thu Oct 30 06:27:30 2025``
2. The full multi-line output of ``csf -g <ip>``.

Every field is optional. A line that matches nothing still parses, into
a record of Nones.
"""

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any

logger = logging.getLogger(__name__)

_IP = r"[0-9A-Fa-f.:]+"

_IP_RE = re.compile(rf"^\s*({_IP})\s*#")
_REASON_TYPE_RE = re.compile(r"lfd:\s*\(([^)]+)\)")
_LOCATION_RE = re.compile(r"\(([A-Z]{2}/[^)]+)\)")
_ATTEMPTS_RE = re.compile(r":\s*(\d+)\s+in\s+the\s+last\s+(\d+)\s+secs")
_TIMESTAMP_RE = re.compile(r".*\s-\s+(.+)$")
_LFD_REASON_RE = re.compile(
    rf"lfd:\s*\([^)]+\)\s+([^(]+?)"
    rf"(?:\s+from\s+{_IP})?"
    r"(?:\s+\([A-Z]{2}/|:\s*\d+\s+in\s+the\s+last|\s+-\s+[A-Z][a-z]{2})"
)
_SIMPLE_REASON_RE = re.compile(r"#\s+(.+?)\s+-\s+[A-Z][a-z]{2}")
_DENY_LINE_IN_OUTPUT_RE = re.compile(r"csf\.deny:\s+(.+)$", re.MULTILINE)

# Substrings of ``csf -g`` output that mean the IP is denied. Case-sensitive:
# these are iptables chain/target names and the deny-file marker.
CSF_BLOCK_MARKERS = ("DENYIN", "DENYOUT", "DROP", "LOGDROPOUT", "csf.deny:")
CSF_NO_MATCH_MARKER = "No matches found"


@dataclass(frozen=True)
class DenyLine:
    """Fields extracted from one csf.deny entry."""

    ip: str | None = None
    reason_type: str | None = None
    reason: str | None = None
    location: str | None = None
    attempts: int | None = None
    timeframe: int | None = None
    timestamp: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def parse_deny_line(line: str) -> DenyLine:
    """Parse a csf.deny line. Missing fields come back as None."""
    line = line.strip()

    ip = None
    if m := _IP_RE.search(line):
        ip = m.group(1)

    reason_type = None
    if m := _REASON_TYPE_RE.search(line):
        reason_type = m.group(1)

    location = None
    if m := _LOCATION_RE.search(line):
        location = m.group(1)

    attempts = timeframe = None
    if m := _ATTEMPTS_RE.search(line):
        attempts = int(m.group(1))
        timeframe = int(m.group(2))

    timestamp = None
    if m := _TIMESTAMP_RE.search(line):
        timestamp = m.group(1).strip()

    reason = None
    if m := _LFD_REASON_RE.search(line):
        reason = m.group(1).strip()
    elif m := _SIMPLE_REASON_RE.search(line):
        reason = m.group(1).strip()

    return DenyLine(
        ip=ip,
        reason_type=reason_type,
        reason=reason,
        location=location,
        attempts=attempts,
        timeframe=timeframe,
        timestamp=timestamp,
    )


def is_csf_blocked(output: str) -> bool:
    """Whether ``csf -g`` output shows a deny.

    DROP/DENY table entries are authoritative: they win over a
    "No matches found" line from another table (ipset, ip6tables).
    """
    if any(marker in output for marker in CSF_BLOCK_MARKERS):
        return True
    if CSF_NO_MATCH_MARKER in output:
        logger.debug("csf reported no matches")
    return False


def summarize_csf_output(output: str) -> dict[str, Any]:
    """Human-readable summary of ``csf -g`` output.

    Returns:
        {
          "blocked": bool,
          "block_type": "csf.deny" | "firewall_rules" | None,
          "reason_short": str | None,
          "attempts": int | None,
          "location": str | None,
          "blocked_since": str | None,
        }
    """
    summary: dict[str, Any] = {
        "blocked": False,
        "block_type": None,
        "reason_short": None,
        "attempts": None,
        "location": None,
        "blocked_since": None,
    }

    if not is_csf_blocked(output):
        return summary
    summary["blocked"] = True

    match = _DENY_LINE_IN_OUTPUT_RE.search(output)
    if match is None:
        summary["block_type"] = "firewall_rules"
        return summary

    deny = parse_deny_line(match.group(1))
    summary["block_type"] = "csf.deny"
    summary["reason_short"] = deny.reason
    summary["attempts"] = deny.attempts
    summary["location"] = deny.location
    summary["blocked_since"] = deny.timestamp
    return summary
