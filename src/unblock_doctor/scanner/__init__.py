"""Scanner package - Remote command construction.

The catalog only builds command strings. Running them is the
connector's job; reasoning about the output is the parsers' job.
"""

from unblock_doctor.scanner.commands import CommandCatalog

__all__ = ["CommandCatalog"]
