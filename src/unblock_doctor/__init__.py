"""unblock-doctor: SSH-based firewall diagnosis and IP unblocking."""

__version__ = "1.0.0"
