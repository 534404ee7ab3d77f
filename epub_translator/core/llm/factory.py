"""
Factory for backend adapters.
"""

from typing import Optional

import httpx

from epub_translator.config import (
    LLM_PROVIDER, ZHIPU_API_KEY, OPENROUTER_API_KEY, CUSTOM_API_ENDPOINT, CUSTOM_API_KEY,
)
from .base import LLMProvider
from .providers import ZhipuProvider, OpenRouterProvider, CustomEndpointProvider, DemoProvider


def create_llm_provider(provider_type: str = LLM_PROVIDER, client: Optional[httpx.AsyncClient] = None,
                        **kwargs) -> LLMProvider:
    """Factory function to create backend adapters

    Args:
        provider_type: 'demo', 'zhipu', 'openrouter' or 'custom'
        client: Optional shared HTTP client
        **kwargs: api_key, model, api_endpoint overrides

    Raises:
        ValueError: unknown provider or missing credentials
    """
    provider_type = (provider_type or 'demo').lower()

    if provider_type == "demo":
        return DemoProvider()
    elif provider_type == "zhipu":
        api_key = kwargs.get("api_key") or ZHIPU_API_KEY
        if not api_key:
            raise ValueError("Zhipu provider requires an API key. Set ZHIPU_API_KEY environment variable or pass api_key parameter.")
        return ZhipuProvider(api_key=api_key, model=kwargs.get("model"),
                             base_url=kwargs.get("api_endpoint"), client=client)
    elif provider_type == "openrouter":
        api_key = kwargs.get("api_key") or OPENROUTER_API_KEY
        if not api_key:
            raise ValueError("OpenRouter provider requires an API key. Set OPENROUTER_API_KEY environment variable or pass api_key parameter.")
        return OpenRouterProvider(api_key=api_key, model=kwargs.get("model"),
                                  api_url=kwargs.get("api_endpoint"), client=client)
    elif provider_type == "custom":
        endpoint = kwargs.get("api_endpoint") or CUSTOM_API_ENDPOINT
        return CustomEndpointProvider(endpoint=endpoint, api_key=kwargs.get("api_key") or CUSTOM_API_KEY,
                                      client=client)
    else:
        raise ValueError(f"Unknown provider type: {provider_type}")
