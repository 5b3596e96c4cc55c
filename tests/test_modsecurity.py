import json

from unblock_doctor.parser.modsecurity import summarize_modsecurity, summarize_transaction


def _event(ip, uri="/wp-login.php", rule="949110", message="Inbound Anomaly Score Exceeded", nested=False):
    messages = [{"message": message, "details": {"ruleId": rule}}]
    transaction = {
        "client_ip": ip,
        "time_stamp": "Thu Oct 30 06:27:30 2025",
        "request": {"uri": uri},
    }
    if nested:
        transaction["messages"] = messages
        return json.dumps({"transaction": transaction})
    return json.dumps({"transaction": transaction, "messages": messages})


def test_exact_ip_isolation_between_substring_ips():
    output = "\n".join([_event("22.2.2.2", uri="/other-tenant"), _event("2.2.2.2", uri="/mine")])

    summary = summarize_modsecurity(output, "2.2.2.2")

    assert summary == (
        "[Thu Oct 30 06:27:30 2025] IP: 2.2.2.2 | URI: /mine | "
        "Rules: [949110] Inbound Anomaly Score Exceeded"
    )
    assert "22.2.2.2" not in summary
    assert "/other-tenant" not in summary


def test_exact_ip_isolation_the_other_way_round():
    output = "\n".join([_event("122.2.2.20"), _event("22.2.2.2", uri="/target")])
    summary = summarize_modsecurity(output, "22.2.2.2")
    assert summary.count("\n") == 0
    assert "URI: /target" in summary
    assert "122.2.2.20" not in summary


def test_invalid_json_lines_are_skipped():
    output = "\n".join(["{not json", "", _event("198.51.100.3"), "garbage"])
    summary = summarize_modsecurity(output, "198.51.100.3")
    assert summary.startswith("[Thu Oct 30 06:27:30 2025] IP: 198.51.100.3")


def test_empty_target_ip_keeps_every_transaction():
    output = "\n".join([_event("1.1.1.1"), _event("2.2.2.2")])
    lines = summarize_modsecurity(output, "").splitlines()
    assert len(lines) == 2


def test_multiple_messages_are_joined():
    line = json.dumps(
        {
            "transaction": {"client_ip": "1.1.1.1", "time_stamp": "ts", "request": {"uri": "/x"}},
            "messages": [
                {"message": "SQL Injection Attack Detected", "details": {"ruleId": "942100"}},
                {"message": "Inbound Anomaly Score Exceeded", "details": {"ruleId": "949110"}},
            ],
        }
    )
    assert summarize_transaction(line, "1.1.1.1") == (
        "[ts] IP: 1.1.1.1 | URI: /x | Rules: "
        "[942100] SQL Injection Attack Detected, [949110] Inbound Anomaly Score Exceeded"
    )


def test_transaction_without_messages_is_dropped():
    line = json.dumps({"transaction": {"client_ip": "1.1.1.1"}, "messages": []})
    assert summarize_transaction(line, "1.1.1.1") is None


def test_nested_messages_are_accepted():
    assert "[949110]" in summarize_modsecurity(_event("1.1.1.1", nested=True), "1.1.1.1")


def test_no_match_returns_empty_string():
    assert summarize_modsecurity(_event("1.1.1.1"), "9.9.9.9") == ""
    assert summarize_modsecurity("", "9.9.9.9") == ""
