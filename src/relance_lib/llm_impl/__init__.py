"""Collect concrete model provider clients and their provider-specific tool registries."""

from .openai_api import OpenAIModelClient, OpenAIToolRegistry

__all__ = ["OpenAIModelClient", "OpenAIToolRegistry"]
