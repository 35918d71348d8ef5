"""LLM service clients and verdict providers."""

from .openrouter_client import OpenRouterClient
from .verdict_provider import LLMVerdictProvider, VerdictProvider

__all__ = [
    "OpenRouterClient",
    "LLMVerdictProvider",
    "VerdictProvider",
]
