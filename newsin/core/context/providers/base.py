"""
Provedor do prompt base do assistente.
"""
from typing import Optional
from ..provider import ContextProvider, ContextResult
from ...models import UserBusinessContext


class BaseSystemPromptProvider(ContextProvider):
    """
    Usa a mensagem system enviada pelo cliente, ou o prompt padrão
    do assistente de notícias quando não houver nenhuma.
    """

    def __init__(self, default_prompt: str):
        self._default_prompt = default_prompt

    @property
    def context_type(self) -> str:
        return "base"

    @property
    def priority(self) -> int:
        return 1  # sempre primeiro

    def get_context(
        self,
        system_prompt: Optional[str] = None,
        user_context: Optional[UserBusinessContext] = None,
        **kwargs
    ) -> Optional[ContextResult]:
        content = system_prompt.strip() if system_prompt and system_prompt.strip() else self._default_prompt
        return ContextResult(
            content=content,
            priority=self.priority,
            metadata={"type": "base_system_prompt", "from_client": content != self._default_prompt},
        )
