"""Generation provider configuration models."""

from pydantic import BaseModel, Field, SecretStr


class GeminiProviderConfig(BaseModel):
    """Configuration for the Gemini REST provider."""

    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="REST API base URL",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="Fallback API key when a run supplies none (prefer run credentials)",
    )
    user_agent: str = Field(
        default="VariantBench/0.1",
        description="User-Agent header for outbound calls",
    )
    force_function_calls: bool = Field(
        default=True,
        description="Send toolConfig mode ANY when tools are attached",
    )


class ProvidersConfig(BaseModel):
    """Configuration for generation providers."""

    gemini: GeminiProviderConfig = Field(
        default_factory=GeminiProviderConfig,
        description="Gemini provider settings",
    )
