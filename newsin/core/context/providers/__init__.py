"""
Provedores de contexto específicos.
"""
from .base import BaseSystemPromptProvider
from .profile import UserProfileContextProvider
from .style import ResponseStyleProvider

__all__ = [
    "BaseSystemPromptProvider",
    "UserProfileContextProvider",
    "ResponseStyleProvider",
]
