"""
Backend adapter implementations

Providers:
    - zhipu: Zhipu GLM hosted gateway
    - openrouter: OpenRouter aggregator
    - custom: user-supplied translation endpoint
    - demo: offline stub, no network
"""

from .zhipu import ZhipuProvider
from .openrouter import OpenRouterProvider
from .custom import CustomEndpointProvider
from .demo import DemoProvider

__all__ = ['ZhipuProvider', 'OpenRouterProvider', 'CustomEndpointProvider', 'DemoProvider']
