"""
Tipos e constantes para a montagem do prompt do sistema.
"""
from enum import Enum


class ContextType(str, Enum):
    """
    Modos de contexto do assistente.

    Cada modo define quais provedores entram no prompt do sistema.
    """
    # Prompt base + perfil do usuário + instruções de resposta detalhada
    DEFAULT = "default"

    # Prompt base + perfil do usuário + instruções de resposta concisa (streaming)
    STREAMING = "streaming"

    # Apenas o prompt base
    BASE = "base"
