"""Content Renderer Config Package"""
from .settings import (
    RendererConfig, get_config,
    COMMON_MATH_EXPRESSIONS, DEFAULT_FLOWCHART_INIT
)

__all__ = [
    'RendererConfig', 'get_config',
    'COMMON_MATH_EXPRESSIONS', 'DEFAULT_FLOWCHART_INIT'
]
