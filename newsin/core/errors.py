"""
Erros do pipeline do assistente e classificação de timeouts.
"""
import asyncio

from openai import APITimeoutError

TIMEOUT_APOLOGY = (
    "I'm sorry, but the request timed out. The search service is taking too long "
    "to respond. Please try a simpler query or try again later."
)
STREAM_TIMEOUT_APOLOGY = (
    "I'm sorry, but the streaming request timed out. The search service is taking too long "
    "to respond. Please try a simpler query or try again later."
)
GENERIC_APOLOGY = (
    "I'm sorry, but I couldn't retrieve the information you requested. "
    "There was an error communicating with the search service. Please try again later."
)
STREAM_GENERIC_APOLOGY = (
    "I'm sorry, but I couldn't stream the information you requested. "
    "There was an error communicating with the search service. Please try again later."
)
MISSING_KEY_APOLOGY = (
    "I'm sorry, but I can't process your request right now due to a configuration issue. "
    "Please make sure the search API key is set in the environment variables."
)
INTERNAL_APOLOGY = (
    "I'm sorry, but an error occurred while processing your request. Please try again later."
)


class AssistantError(Exception):
    """Erro base do pipeline do assistente."""


class InvalidConversationError(AssistantError):
    """Nenhuma mensagem válida sobrou após a validação da conversa."""


class CompletionTimeoutError(AssistantError):
    """A chamada a um provedor excedeu o timeout configurado."""


class UpstreamError(AssistantError):
    """Falha ao falar com um provedor externo (status HTTP, resposta inválida)."""


def is_timeout_error(error: BaseException) -> bool:
    """
    Indica se o erro representa um timeout.

    Aceita os tipos de timeout conhecidos e, como o pipeline original,
    qualquer mensagem contendo "timed out".
    """
    if isinstance(error, (CompletionTimeoutError, APITimeoutError, asyncio.TimeoutError, TimeoutError)):
        return True
    return "timed out" in str(error).lower()
