"""
Utilities for LLM response processing.
"""
from .cleanup import CleanupRule, ResponseCleaner, DEFAULT_CLEANUP_RULES, load_cleanup_rules

__all__ = ['CleanupRule', 'ResponseCleaner', 'DEFAULT_CLEANUP_RULES', 'load_cleanup_rules']
