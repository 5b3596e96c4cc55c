"""Parser package - Pure functions over raw command output.

Parsers never raise on malformed input; missing data comes back as
None or an empty string.
"""

from unblock_doctor.parser.block_patterns import (
    DETECTORS,
    detect_block_sources,
    extract_blocking_details,
    filter_exact_ip_lines,
)
from unblock_doctor.parser.csf_output import DenyLine, parse_deny_line, summarize_csf_output
from unblock_doctor.parser.modsecurity import summarize_modsecurity

__all__ = [
    "DETECTORS",
    "DenyLine",
    "detect_block_sources",
    "extract_blocking_details",
    "filter_exact_ip_lines",
    "parse_deny_line",
    "summarize_csf_output",
    "summarize_modsecurity",
]
