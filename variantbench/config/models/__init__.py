"""Configuration model exports.

    from variantbench.config.models import ExecutionConfig, GeminiProviderConfig
"""

from variantbench.config.models.execution import ExecutionConfig
from variantbench.config.models.observability import LoggingConfig, ObservabilityConfig
from variantbench.config.models.providers import GeminiProviderConfig, ProvidersConfig

__all__ = [
    # Execution
    "ExecutionConfig",
    # Observability
    "LoggingConfig",
    "ObservabilityConfig",
    # Providers
    "GeminiProviderConfig",
    "ProvidersConfig",
]
