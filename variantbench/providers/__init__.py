"""Providers for external AI capabilities."""
