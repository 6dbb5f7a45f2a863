"""
Provedores com as instruções de formato da resposta.
"""
from typing import Optional
from ..provider import ContextProvider, ContextResult
from ...models import UserBusinessContext

DETAILED_STYLE = (
    "CRITICAL INSTRUCTION: You MUST start your response with a complete sentence that begins "
    "with a capital letter and ends with proper punctuation. NEVER start with a partial phrase "
    "or a continuation of a thought. Your first sentence must be self-contained and complete. "
    "IMPORTANT: You MUST provide complete, comprehensive responses that fully utilize all context "
    "provided by the user. Your response should be thorough and detailed. Do not truncate or "
    "abbreviate your responses. Ensure proper formatting with clear sections, headings, and "
    "bullet points where appropriate. Include relevant citations. If the user's query is about "
    "trends or industry information, provide a structured, well-organized response covering all "
    "relevant aspects."
)

CONCISE_STYLE = "Keep responses concise and under 300 words."


class ResponseStyleProvider(ContextProvider):
    """
    Instruções de tamanho e formato da resposta.

    O modo detalhado é usado no endpoint JSON; o conciso no streaming,
    onde respostas longas demoram demais para chegar ao cliente.
    """

    def __init__(self, concise: bool = False):
        self._concise = concise

    @property
    def context_type(self) -> str:
        return "style_concise" if self._concise else "style_detailed"

    @property
    def priority(self) -> int:
        return 90  # sempre por último

    def get_context(
        self,
        system_prompt: Optional[str] = None,
        user_context: Optional[UserBusinessContext] = None,
        **kwargs
    ) -> Optional[ContextResult]:
        return ContextResult(
            content=CONCISE_STYLE if self._concise else DETAILED_STYLE,
            priority=self.priority,
            metadata={"type": self.context_type},
        )
