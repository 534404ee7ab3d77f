"""
Concurrency control for backend requests: gate, cache and retry controller.
"""
from .gate import ConcurrencyGate
from .cache import TranslationCache
from .retry import RetryConfig, with_retry, calculate_delay

__all__ = ['ConcurrencyGate', 'TranslationCache', 'RetryConfig', 'with_retry', 'calculate_delay']
