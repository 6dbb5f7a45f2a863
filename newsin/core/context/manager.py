"""
Gerenciador que monta o prompt do sistema a partir de múltiplos provedores.
"""
import logging
from typing import Dict, List, Optional
from .provider import ContextProvider, ContextResult
from .types import ContextType
from ..models import UserBusinessContext

logger = logging.getLogger(__name__)

# Provedores usados por cada modo de contexto, na ordem de seleção
PROVIDERS_BY_CONTEXT: Dict[ContextType, List[str]] = {
    ContextType.DEFAULT: ["base", "profile", "style_detailed"],
    ContextType.STREAMING: ["base", "profile", "style_concise"],
    ContextType.BASE: ["base"],
}


class ContextManager:
    """
    Orquestra os provedores de contexto e constrói o prompt final do sistema.
    """

    def __init__(self, providers: List[ContextProvider]):
        self._providers: Dict[str, ContextProvider] = {}
        for provider in providers:
            provider_type = provider.context_type
            if provider_type in self._providers:
                logger.warning(
                    f"Provedor duplicado para tipo '{provider_type}'. "
                    f"Substituindo pelo último."
                )
            self._providers[provider_type] = provider

        logger.info(
            f"ContextManager inicializado com {len(self._providers)} provedores: "
            f"{list(self._providers.keys())}"
        )

    def build_system_prompt(
        self,
        context_types: Optional[List[ContextType]] = None,
        system_prompt: Optional[str] = None,
        user_context: Optional[UserBusinessContext] = None,
        request_id: Optional[str] = None,
        **kwargs
    ) -> str:
        """
        Constrói o prompt do sistema combinando os trechos dos provedores.

        Um provedor que falha é registrado no log e ignorado.

        Args:
            context_types: Modos de contexto a incluir (None = DEFAULT)
            system_prompt: Mensagem system enviada pelo cliente
            user_context: Preferências do usuário
            request_id: ID da requisição para logs

        Returns:
            Prompt completo do sistema
        """
        if context_types is None:
            context_types = [ContextType.DEFAULT]

        results: List[ContextResult] = []
        for provider in self._select_providers(context_types):
            try:
                result = provider.get_context(
                    system_prompt=system_prompt,
                    user_context=user_context,
                    **kwargs
                )
                if result and not result.is_empty():
                    results.append(result)
            except Exception as e:
                logger.error(
                    f"Erro ao obter contexto do provedor '{provider.context_type}': "
                    f"request_id={request_id}, error={e}",
                    exc_info=True
                )

        results.sort(key=lambda r: r.priority)
        final_prompt = "\n\n".join(r.content.strip() for r in results)

        logger.debug(
            f"Prompt do sistema construído: request_id={request_id}, "
            f"context_types={[ct.value for ct in context_types]}, "
            f"num_sections={len(results)}, prompt_length={len(final_prompt)}"
        )
        return final_prompt

    def _select_providers(self, context_types: List[ContextType]) -> List[ContextProvider]:
        providers: List[ContextProvider] = []
        seen = set()
        for context_type in context_types:
            for name in PROVIDERS_BY_CONTEXT.get(context_type, []):
                provider = self._providers.get(name)
                if provider is not None and name not in seen:
                    seen.add(name)
                    providers.append(provider)
        return providers
