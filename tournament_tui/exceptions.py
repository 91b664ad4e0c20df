"""
Exceptions raised by the dashboard core.

Operation-level errors are recovered inside the dashboard (they become
events); only FatalInitError and configuration errors end the process.
"""


class DashboardError(Exception):
    """Base exception for dashboard errors."""

    pass


def _label(value) -> str:
    return getattr(value, "label", str(value))


class AlreadyActive(DashboardError):
    """Raised when an operation begins while another one is current."""

    def __init__(self, requested, current):
        self.requested = requested
        self.current = current
        super().__init__(
            f"Cannot start {_label(requested)}: {_label(current)} is already in progress"
        )


class OperationInProgress(AlreadyActive):
    """Raised when the runner refuses to start a second operation."""

    pass


class WrongOperation(DashboardError):
    """Raised when a progress update names an operation that is not current."""

    def __init__(self, kind, current):
        self.kind = kind
        self.current = current
        super().__init__(f"Update for {_label(kind)} while {_label(current)} is current")


class OperationCancelled(DashboardError):
    """Raised at a checkpoint when the dashboard is shutting down."""

    pass


class CollaboratorFailure(DashboardError):
    """Raised when a download/train/predict/upload collaborator fails."""

    pass


class SnapshotUnavailable(DashboardError):
    """Raised when system resource polling fails."""

    pass


class TerminalUnavailable(DashboardError):
    """Raised when raw keyboard mode cannot be enabled."""

    pass


class FatalInitError(DashboardError):
    """Raised when the dashboard cannot acquire the terminal at all."""

    pass


class ConfigError(DashboardError):
    """Raised when the config file is missing, unreadable or not valid YAML."""

    def __init__(self, message, path=None):
        self.path = path
        super().__init__(message)


class ValidationError(ConfigError):
    """Raised when a config value has the wrong type or is out of range."""

    pass


__all__ = [
    "DashboardError",
    "AlreadyActive",
    "OperationInProgress",
    "WrongOperation",
    "OperationCancelled",
    "CollaboratorFailure",
    "SnapshotUnavailable",
    "TerminalUnavailable",
    "FatalInitError",
    "ConfigError",
    "ValidationError",
]
