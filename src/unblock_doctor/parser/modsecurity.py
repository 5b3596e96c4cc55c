"""ModSecurity Parser - Summarize JSON audit log lines for one client IP.

Each input line is one JSON transaction. Only transactions whose
``transaction.client_ip`` is exactly the target IP are kept: a substring
match would leak other clients' data (``2.2.2.2`` vs ``22.2.2.2``).
"""

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


def _get(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _format_messages(messages: Any) -> list[str]:
    if not isinstance(messages, list):
        return []
    formatted = []
    for msg in messages:
        rule_id = _get(msg, "details", "ruleId")
        text = _get(msg, "message")
        if rule_id is None and text is None:
            continue
        formatted.append(f"[{rule_id or ''}] {text or ''}")
    return formatted


def summarize_transaction(line: str, target_ip: str = "") -> str | None:
    """Summarize one JSON line, or None if it is skipped.

    Skipped: invalid JSON, a different client IP, or no rule messages.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        logger.debug("Skipping non-JSON ModSecurity line: %s", e)
        return None

    client_ip = _get(data, "transaction", "client_ip")
    if target_ip and client_ip != target_ip:
        return None

    messages = _format_messages(_get(data, "messages"))
    if not messages:
        # Older connector versions nest the array under the transaction.
        messages = _format_messages(_get(data, "transaction", "messages"))
    if not messages:
        return None

    timestamp = _get(data, "transaction", "time_stamp") or ""
    uri = _get(data, "transaction", "request", "uri") or ""
    return f"[{timestamp}] IP: {client_ip} | URI: {uri} | Rules: {', '.join(messages)}"


def summarize_modsecurity(output: str, target_ip: str = "") -> str:
    """Turn raw JSON lines into one summary line per matching transaction.

    Args:
        output: Newline-delimited JSON from the audit log.
        target_ip: Keep only this client IP. Empty string keeps every line.

    Returns:
        Newline-joined summaries, or "" when nothing matched.
    """
    summaries = []
    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            continue
        summary = summarize_transaction(line, target_ip)
        if summary:
            summaries.append(summary)
    return "\n".join(summaries)
