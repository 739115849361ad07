"""Hosted language model adapters."""

from src.adapters.llm.anthropic_router import AnthropicRouter

__all__ = ["AnthropicRouter"]
