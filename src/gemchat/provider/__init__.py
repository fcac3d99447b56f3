"""Upstream generative-language provider clients."""

from .gemini import ProviderError

__all__ = ["ProviderError"]
