from unblock_doctor.parser.block_patterns import (
    detect_block_sources,
    detect_csf_block_type,
    extract_blocking_details,
    extract_csf_rules,
    filter_exact_ip_lines,
    parse_bfm_timestamp,
)

CSF_DENY_OUTPUT = (
    "Table  Chain            num   pkts bytes target     prot opt in     out     source               destination\n"
    "filter DENYIN           133      0     0 DROP       all  --  !lo    *       203.0.113.7          0.0.0.0/0\n"
)


def test_empty_and_whitespace_logs_never_block():
    logs = {source: "   \n" for source in ("csf", "csf_deny", "csf_tempip", "da_bfm", "exim", "dovecot", "mod_security")}
    assert detect_block_sources(logs) == []
    assert detect_block_sources({}) == []


def test_csf_markers_are_case_sensitive():
    assert detect_block_sources({"csf": CSF_DENY_OUTPUT}) == ["csf"]
    assert detect_block_sources({"csf": "filter denyin 1 0 0 drop"}) == []
    assert detect_block_sources({"csf": "IPSET: No matches found for 203.0.113.7"}) == []


def test_grep_filtered_files_block_on_any_content():
    sources = detect_block_sources(
        {
            "csf_deny": "203.0.113.7 # manual",
            "csf_tempip": "203.0.113.7|1|3600|reason",
            "da_bfm": "203.0.113.7 20251030062730",
        }
    )
    assert sources == ["csf_deny", "csf_tempip", "da_bfm"]


def test_bfm_no_matches_is_not_a_block():
    assert detect_block_sources({"da_bfm": "No matches"}) == []


def test_service_keywords_are_case_insensitive():
    logs = {
        "exim": "2025-10-30 dovecot_login authenticator failed for (x) [203.0.113.7]: 535 Incorrect authentication data (set_id=a) REJECTED",
        "dovecot": "imap-login: Disconnected (auth failed, 3 attempts): rip=203.0.113.7,",
        "mod_security": "[ts] IP: 203.0.113.7 | URI: / | Rules: [949110] Inbound Anomaly Score Exceeded",
    }
    assert detect_block_sources(logs) == ["exim", "dovecot", "modsecurity"]


def test_mail_lines_without_keywords_are_not_blocks():
    assert detect_block_sources({"exim": "203.0.113.7 delivered", "dovecot": "Login: user=<a>"}) == []


def test_filter_exact_ip_lines_drops_prefix_collisions():
    output = "\n".join(
        [
            "10.192.168.1.100 # other",
            "192.168.1.100 # lfd: (sshd) blocked",
            "192.168.1.1000 # other",
            "192.168.1.100|0|3600|tempip",
            "   ",
        ]
    )
    assert filter_exact_ip_lines(output, "192.168.1.100").splitlines() == [
        "192.168.1.100 # lfd: (sshd) blocked",
        "192.168.1.100|0|3600|tempip",
    ]


def test_filter_exact_ip_lines_empty_when_nothing_matches():
    assert filter_exact_ip_lines("10.192.168.1.100 20250101000000", "192.168.1.100") == ""


def test_csf_block_type_and_rules():
    assert detect_csf_block_type(CSF_DENY_OUTPUT) == "deny_input"
    assert detect_csf_block_type("filter DENYOUT 1 0 0 DROP") == "deny_output"
    assert detect_csf_block_type("Temporary Blocks: IP:203.0.113.7") == "temporary"
    assert detect_csf_block_type("DROP") == "unknown"
    assert extract_csf_rules(CSF_DENY_OUTPUT) == {"DENYIN": "DROP"}


def test_bfm_timestamp():
    assert parse_bfm_timestamp("203.0.113.7 20251030062730") == "2025-10-30 06:27:30"
    assert parse_bfm_timestamp("203.0.113.7") is None
    assert parse_bfm_timestamp("203.0.113.7 20251399999999") is None


def test_blocking_details_per_source(csf_deny_line):
    logs = {
        "csf": CSF_DENY_OUTPUT + f"csf.deny: {csf_deny_line}\n",
        "csf_deny": csf_deny_line,
        "da_bfm": "158.173.23.58 20251030062730",
        "exim": "authenticator failed for (x) [158.173.23.58]\nauthenticator failed for (x) [158.173.23.58]",
    }
    sources = detect_block_sources(logs)
    details = extract_blocking_details(logs, sources)

    assert details["csf"]["block_type"] == "csf.deny"
    assert details["csf"]["type"] == "deny_input"
    assert details["csf"]["attempts"] == 5
    assert details["csf_deny"]["entries"][0]["reason_type"] == "smtpauth"
    assert details["bfm"] == {
        "blacklist_entry": "158.173.23.58 20251030062730",
        "timestamp": "2025-10-30 06:27:30",
    }
    assert details["exim"]["service"] == "exim"
    assert len(details["exim"]["log_entries"]) == 2
    assert details["exim"]["block_patterns"] == ["authenticator failed for (x) [158.173.23.58]"]
