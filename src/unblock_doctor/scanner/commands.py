"""Command Catalog - Symbolic operation names to remote shell commands.

These strings are the protocol spoken with the managed hosts: csf flags,
log paths and grep anchors must stay compatible with what is installed
there. The IP is shell-quoted wherever it is interpolated, even though
callers validate it first.
"""

import shlex

from unblock_doctor.config import Settings
from unblock_doctor.exceptions import UnknownOperationError

CSF_DENY_FILE = "/etc/csf/csf.deny"
CSF_TEMPIP_FILE = "/var/lib/csf/csf.tempip"
BFM_BLACKLIST_FILE = "/usr/local/directadmin/data/admin/ip_blacklist"
DA_MODSEC_AUDIT_LOG = "/var/log/nginx/modsec_audit.log"
DA_EXIM_LOG = "/var/log/exim/mainlog"
DA_DOVECOT_LOG = "/var/log/mail.log"
CPANEL_EXIM_LOG = "/var/log/exim_mainlog"
CPANEL_DOVECOT_LOG = "/var/log/maillog"

# Printed by the BFM verification command when the IP is absent.
BFM_NOT_FOUND_MARKER = "IP not found in blacklist"

# Cheapest command that proves both SSH access and a working csf install.
CSF_VERSION_COMMAND = "csf -v"


def bfm_line_pattern(ip: str) -> str:
    """Extended regex matching a blacklist line that starts with exactly ``ip``.

    The ``(\\s|$)`` tail stops 192.168.1.100 from matching 192.168.1.1000,
    and the ``^`` stops it from matching 10.192.168.1.100.
    """
    return "^" + ip.replace(".", r"\.") + r"(\s|$)"


class CommandCatalog:
    """Builds remote commands for an (operation, ip) pair.

    ``build`` returns None for unknown operations; ``require`` raises
    UnknownOperationError instead, which is what analyzers use.
    """

    OPERATIONS = (
        "csf",
        "csf_deny_check",
        "csf_tempip_check",
        "mod_security",
        "exim_directadmin",
        "dovecot_directadmin",
        "exim_cpanel",
        "dovecot_cpanel",
        "da_bfm_check",
        "da_bfm_fetch",
        "unblock",
        "unblock_permanent",
        "unblock_temporary",
        "whitelist",
    )

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()

    @property
    def whitelist_ttl(self) -> int:
        return self.settings.effective_whitelist_ttl()

    def build(self, operation: str, ip: str) -> str | None:
        """Return the command for ``operation`` against ``ip``, or None."""
        q = shlex.quote(ip)
        ttl = self.whitelist_ttl

        commands = {
            "csf": f"csf -g {q}",
            "csf_deny_check": f"cat {CSF_DENY_FILE} | grep {q} || true",
            "csf_tempip_check": f"cat {CSF_TEMPIP_FILE} | grep {q} || true",
            "mod_security": f"cat {DA_MODSEC_AUDIT_LOG} | grep {q} || true",
            "exim_directadmin": self._mail_grep(DA_EXIM_LOG, f"[{ip}]", "authenticator failed"),
            "dovecot_directadmin": self._mail_grep(DA_DOVECOT_LOG, f"rip={ip},", "auth failed"),
            "exim_cpanel": self._mail_grep(CPANEL_EXIM_LOG, f"[{ip}]", "authenticator failed"),
            "dovecot_cpanel": self._mail_grep(CPANEL_DOVECOT_LOG, f"rip={ip},", "auth failed"),
            "da_bfm_check": (
                f"cat {BFM_BLACKLIST_FILE} | grep -E {shlex.quote(bfm_line_pattern(ip))} || true"
            ),
            "da_bfm_fetch": f"cat {BFM_BLACKLIST_FILE}",
            "unblock": f"csf -dr {q} && csf -tr {q} && csf -ta {q} {ttl}",
            "unblock_permanent": f"csf -dr {q}",
            "unblock_temporary": f"csf -tr {q}",
            "whitelist": f"csf -ta {q} {ttl}",
        }
        return commands.get(operation)

    def require(self, operation: str, ip: str) -> str:
        """Like build(), but unknown operations are a configuration error."""
        command = self.build(operation, ip)
        if command is None:
            raise UnknownOperationError(operation)
        return command

    def bfm_verify(self, ip: str) -> str:
        """Re-check the blacklist after a rewrite; prints a marker when absent."""
        pattern = shlex.quote(bfm_line_pattern(ip))
        return (
            f"cat {BFM_BLACKLIST_FILE} | grep -E {pattern} "
            f"|| echo {shlex.quote(BFM_NOT_FOUND_MARKER)}"
        )

    @staticmethod
    def bfm_rewrite(content: str) -> str:
        """Replace the blacklist with ``content`` (already filtered locally)."""
        return f"echo {shlex.quote(content)} > {BFM_BLACKLIST_FILE}"

    @staticmethod
    def _mail_grep(log_path: str, needle: str, failure_marker: str) -> str:
        # -F: the needle is literal, so dots and brackets match themselves.
        return (
            f"cat {log_path} | grep -Fa {shlex.quote(needle)} "
            f"| grep {shlex.quote(failure_marker)} || true"
        )
