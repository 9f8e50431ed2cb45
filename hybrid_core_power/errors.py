"""
Exception taxonomy for hybrid core power control.

Fatal errors (privilege, missing dependency) stop the CLI before any action.
InterfaceUnavailableError is raised by backends and handled by the controller
and meter, which degrade instead of failing.
"""


class HybridCorePowerError(Exception):
    """Base class for all errors raised by this package."""


class PrivilegeError(HybridCorePowerError):
    """The process lacks the elevation needed to write control files."""


class DependencyMissingError(HybridCorePowerError):
    """A required external tool is not available on PATH."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"'{tool}' is required but was not found on PATH")


class InterfaceUnavailableError(HybridCorePowerError):
    """A per-processor control file or the energy counter is missing or unusable."""

    def __init__(self, interface: str, reason: str = "not found"):
        self.interface = interface
        self.reason = reason
        super().__init__(f"{interface}: {reason}")
