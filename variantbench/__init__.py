"""VariantBench: run one prompt across many model configurations and compare them."""

__version__ = "0.1.0"
