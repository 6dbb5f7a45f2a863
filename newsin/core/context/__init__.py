"""
Módulo de montagem do prompt do sistema do assistente.

Permite combinar diferentes trechos de contexto de forma modular.
"""

from .types import ContextType
from .provider import ContextProvider, ContextResult
from .manager import ContextManager
from .providers import (
    BaseSystemPromptProvider,
    UserProfileContextProvider,
    ResponseStyleProvider,
)

__all__ = [
    "ContextType",
    "ContextProvider",
    "ContextResult",
    "ContextManager",
    "BaseSystemPromptProvider",
    "UserProfileContextProvider",
    "ResponseStyleProvider",
]
