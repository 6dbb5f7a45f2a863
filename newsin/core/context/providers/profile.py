"""
Provedor de contexto com o perfil profissional do usuário.
"""
import logging
from typing import List, Optional
from ..provider import ContextProvider, ContextResult
from ...models import UserBusinessContext

logger = logging.getLogger(__name__)


class UserProfileContextProvider(ContextProvider):
    """
    Descreve o setor, o negócio, o cargo e os temas acompanhados pelo usuário,
    para que a API de busca priorize notícias relevantes a ele.
    """

    @property
    def context_type(self) -> str:
        return "profile"

    @property
    def priority(self) -> int:
        return 20

    def get_context(
        self,
        system_prompt: Optional[str] = None,
        user_context: Optional[UserBusinessContext] = None,
        **kwargs
    ) -> Optional[ContextResult]:
        if user_context is None:
            return None

        parts: List[str] = []

        sector = user_context.business.effective_sector
        if sector:
            parts.append(f"The user works in the {sector} sector.")

        if user_context.business.description:
            parts.append(f"Their business: {user_context.business.description}.")

        role = user_context.role.effective_type
        if role:
            parts.append(f"Their role is {role}.")

        if user_context.themes.selected:
            parts.append(
                f"They're tracking these key themes: {', '.join(user_context.themes.selected)}."
            )

        if user_context.themes.custom:
            parts.append(f"Additional themes of interest: {user_context.themes.custom}.")

        if not parts:
            return None

        return ContextResult(
            content=" ".join(parts),
            priority=self.priority,
            metadata={"type": "user_profile", "num_facts": len(parts)},
        )
