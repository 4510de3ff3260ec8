"""FunctionRegistry interface and in-memory implementation."""

from abc import ABC, abstractmethod

from variantbench.functions.models import FunctionDefinition


class FunctionRegistry(ABC):
    """Abstract interface for function definition lookup."""

    @abstractmethod
    async def get_function_definition(self, name: str) -> FunctionDefinition | None:
        """Get an active function definition by name."""
        pass

    @abstractmethod
    async def list_functions(self, *, include_inactive: bool = False) -> list[FunctionDefinition]:
        """List registered function definitions ordered by name."""
        pass

    @abstractmethod
    async def register(self, definition: FunctionDefinition) -> str:
        """Register or replace a function definition, returning its name."""
        pass


class InMemoryFunctionRegistry(FunctionRegistry):
    """In-memory implementation of FunctionRegistry for testing and development."""

    def __init__(self, definitions: list[FunctionDefinition] | None = None) -> None:
        self._definitions: dict[str, FunctionDefinition] = {}
        for definition in definitions or []:
            self._definitions[definition.name] = definition

    async def get_function_definition(self, name: str) -> FunctionDefinition | None:
        definition = self._definitions.get(name)
        if definition is None or not definition.is_active:
            return None
        return definition

    async def list_functions(self, *, include_inactive: bool = False) -> list[FunctionDefinition]:
        results = [
            d for d in self._definitions.values()
            if include_inactive or d.is_active
        ]
        results.sort(key=lambda d: d.name)
        return results

    async def register(self, definition: FunctionDefinition) -> str:
        self._definitions[definition.name] = definition
        return definition.name
