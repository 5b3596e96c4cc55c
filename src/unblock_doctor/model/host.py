"""Host dataclass - a managed hosting server."""

from dataclasses import dataclass, field
from enum import Enum


class PanelType(Enum):
    """Hosting control panel installed on a host."""

    CPANEL = "cpanel"
    DIRECTADMIN = "directadmin"
    UNKNOWN = "unknown"

    @classmethod
    def from_value(cls, value: "str | PanelType | None") -> "PanelType":
        """Map a stored panel string to a PanelType. Anything unrecognized is UNKNOWN."""
        if isinstance(value, PanelType):
            return value
        normalized = (value or "").strip().lower()
        if normalized == "da":
            return cls.DIRECTADMIN
        for panel in cls:
            if panel.value == normalized:
                return panel
        return cls.UNKNOWN


@dataclass(frozen=True)
class Host:
    """A remote server, as read from the host directory.

    The core never creates or mutates hosts.

    Attributes:
        id: Directory id.
        fqdn: Fully-qualified domain name used to dial SSH.
        ip: Public address of the server.
        port_ssh: SSH port.
        panel: Raw panel string as stored (``cpanel``, ``directadmin``, ...).
        admin: Remote user commands run as.
        private_key: Opaque private key material. Never logged.
        public_key: Matching public key, informational only.
    """

    id: int
    fqdn: str
    ip: str = ""
    port_ssh: int = 22
    panel: str = "unknown"
    admin: str = "root"
    private_key: str = field(default="", repr=False)
    public_key: str = field(default="", repr=False)

    @property
    def panel_type(self) -> PanelType:
        return PanelType.from_value(self.panel)

    @property
    def address(self) -> str:
        """Address to dial: the FQDN, or the IP when no FQDN is set."""
        return self.fqdn or self.ip

    def is_connectable(self) -> bool:
        """True when the host has an address and a private key."""
        return bool(self.address.strip()) and bool(self.private_key.strip())
