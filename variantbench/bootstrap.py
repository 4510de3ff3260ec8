"""Bootstrap module for quick VariantBench setup.

Builds a ready-to-use ExecutionService from configuration, primarily for
notebooks, demos and transport layers. Handles:
- Loading configuration from TOML files and environment variables
- Configuring structured logging
- Creating the in-memory execution logger and function registry
  (seeded with the default functions)

Example usage:

    from variantbench.bootstrap import bootstrap

    service, ctx = bootstrap()

    handle = await service.execute(request, credentials)
    status = await service.wait(handle.execution_id)
"""

from dataclasses import dataclass

from variantbench.audit.store import ExecutionLogger
from variantbench.audit.stores.inmemory import InMemoryExecutionLogger
from variantbench.config import get_settings
from variantbench.config.settings import Settings
from variantbench.execution.service import ExecutionService
from variantbench.functions.defaults import default_function_definitions
from variantbench.functions.registry import FunctionRegistry, InMemoryFunctionRegistry
from variantbench.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)


@dataclass
class BootstrapContext:
    """Stores and settings backing a bootstrapped service."""

    settings: Settings
    execution_logger: ExecutionLogger
    function_registry: FunctionRegistry


def bootstrap(
    settings: Settings | None = None,
    execution_logger: ExecutionLogger | None = None,
    function_registry: FunctionRegistry | None = None,
) -> tuple[ExecutionService, BootstrapContext]:
    """Bootstrap a fully-configured ExecutionService.

    Args:
        settings: Override settings (default: get_settings())
        execution_logger: Override sink (default: in-memory)
        function_registry: Override registry (default: in-memory, seeded
            with the default functions)

    Returns:
        Tuple of (ExecutionService, BootstrapContext)
    """
    settings = settings or get_settings()
    logging_config = settings.observability.logging
    setup_logging(
        level=logging_config.level,
        format=logging_config.format,
        redact_pii=logging_config.redact_pii,
    )

    execution_logger = execution_logger or InMemoryExecutionLogger()
    function_registry = function_registry or InMemoryFunctionRegistry(
        default_function_definitions()
    )

    service = ExecutionService(
        execution_logger,
        function_registry,
        settings=settings,
    )

    logger.info(
        "service_bootstrapped",
        execution_logger=type(execution_logger).__name__,
        function_registry=type(function_registry).__name__,
        generation_timeout_seconds=settings.execution.generation_timeout_seconds,
    )

    return service, BootstrapContext(
        settings=settings,
        execution_logger=execution_logger,
        function_registry=function_registry,
    )
