"""
LLM client module for OpenAI-compatible chat APIs.
"""

from .client import LLMClient, LLMError, create_client

__all__ = ["LLMClient", "LLMError", "create_client"]
