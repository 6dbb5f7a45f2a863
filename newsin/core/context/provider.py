"""
Classe base para provedores de contexto do prompt.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any
from ..models import UserBusinessContext


@dataclass
class ContextResult:
    """
    Trecho do prompt do sistema gerado por um provedor.

    Attributes:
        content: Texto a ser adicionado ao prompt
        priority: Ordem no prompt (menor número = aparece antes)
        metadata: Metadados adicionais (opcional)
    """
    content: str
    priority: int = 100
    metadata: Optional[Dict[str, Any]] = None

    def is_empty(self) -> bool:
        return not self.content or not self.content.strip()


class ContextProvider(ABC):
    """
    Classe base abstrata para provedores de contexto.

    Cada provedor gera uma parte do prompt do sistema enviado à API de busca:
    - BaseSystemPromptProvider: instrução base do assistente
    - UserProfileContextProvider: negócio, cargo e temas do usuário
    - ResponseStyleProvider: instruções de tamanho/formato da resposta
    """

    @abstractmethod
    def get_context(
        self,
        system_prompt: Optional[str] = None,
        user_context: Optional[UserBusinessContext] = None,
        **kwargs
    ) -> Optional[ContextResult]:
        """
        Gera o trecho do prompt.

        Args:
            system_prompt: Conteúdo da mensagem system enviada pelo cliente (opcional)
            user_context: Preferências do usuário (opcional)
            **kwargs: Argumentos específicos do provedor

        Returns:
            ContextResult, ou None se não aplicável
        """
        pass

    @property
    @abstractmethod
    def context_type(self) -> str:
        """
        Identificador do provedor (ex: "base", "profile", "style").
        """
        pass

    @property
    def priority(self) -> int:
        return 100
