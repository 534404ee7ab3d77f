"""
Backend adapters for LLM translation services.
"""
from .base import LLMProvider, LLMResponse, estimate_tokens
from .factory import create_llm_provider

__all__ = ['LLMProvider', 'LLMResponse', 'estimate_tokens', 'create_llm_provider']
