"""LLMChat gateway: streaming chat proxy for FastGPT, OpenAI and Anthropic agents."""

from ._version import __version__


__all__ = ["__version__"]
