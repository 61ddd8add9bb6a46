"""Domain-specific errors for fluffd."""


class FluffdError(Exception):
    """Base error for fluffd."""


class ConfigError(FluffdError):
    """Raised when an environment or CLI setting cannot be parsed."""


class CatalogValidationError(FluffdError):
    """Raised when a command catalog file does not conform to schema or semantics."""


class CatalogLoadError(FluffdError):
    """Raised when reading command catalog sources fails."""


class MalformedRequestError(FluffdError):
    """Raised when an HTTP command body is not a JSON object."""


class TargetNotFoundError(FluffdError):
    """Raised when a named dispatch target is not registered."""

    def __init__(self, target: str) -> None:
        super().__init__(f"could not find target {target}")
        self.target = target


class ExecutionError(FluffdError):
    """Raised when a session fails to execute a command."""


class CommandResolutionError(ExecutionError):
    """Raised when a command name or its params cannot be encoded."""


class TransportError(FluffdError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on BLE connect failures."""


class TransportSendError(TransportError):
    """Raised when writing a payload to a characteristic fails."""


class TransportScanError(TransportError):
    """Raised when scanning cannot be started or stopped."""
