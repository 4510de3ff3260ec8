"""Exception hierarchy for the execution engine.

All engine exceptions inherit from VariantBenchError, which carries a
human-readable message and an error_code used by callers to map the
failure onto their own transport.
"""


class VariantBenchError(Exception):
    """Base exception for all engine errors."""

    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ExecutionConfigurationError(VariantBenchError):
    """Raised when an execution request is rejected before the run starts."""

    error_code = "INVALID_REQUEST"


class ExecutionSetupError(VariantBenchError):
    """Raised when the execution run record cannot be created."""

    error_code = "SETUP_FAILED"


class InvalidRunTransitionError(VariantBenchError):
    """Raised when an execution run is moved along an illegal status edge."""

    error_code = "INVALID_TRANSITION"


class ComparisonError(VariantBenchError):
    """Raised when the comparator cannot produce a result."""

    error_code = "COMPARISON_FAILED"


class ExecutionNotFoundError(VariantBenchError):
    """Raised when an execution id is unknown."""

    error_code = "EXECUTION_NOT_FOUND"


class ExecutionLoggerError(VariantBenchError):
    """Raised by an execution logger when a write cannot be completed."""

    error_code = "PERSISTENCE_FAILED"


class ConfigurationLoadError(VariantBenchError):
    """Raised when a configuration file cannot be parsed."""

    error_code = "INVALID_CONFIGURATION"
