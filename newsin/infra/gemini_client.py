import asyncio
import logging
from typing import AsyncIterator, List, Optional
from google import genai
from google.genai import types
from ..core.errors import CompletionTimeoutError, UpstreamError
from ..core.models import Message, Role
from ..config import AppConfig

logger = logging.getLogger(__name__)

READABILITY_PROMPT = (
    "Rewrite the following news content to improve its readability. "
    "Keep every fact, number, name and citation marker (such as [1]) exactly as given. "
    "Do not add new information, greetings or commentary. "
    "Return only the rewritten text, preserving Markdown formatting.\n\n"
    "Content:\n{text}"
)

SUMMARY_PROMPT = "Summarize the following text in a concise manner: {text}"

RECOMMENDATIONS_PROMPT = (
    "Based on the user's interests: {interests}\n"
    "And their recently read articles: {articles}\n"
    "Provide 3-5 personalized news recommendations."
)


class GenerativeTextClient:
    """
    Encapsula chamadas ao modelo generativo (Gemini).

    Usado para a segunda passada de "melhorar legibilidade" sobre o conteúdo
    já obtido pela API de busca, e para resumos/recomendações.
    """

    def __init__(self, config: AppConfig, client: Optional[genai.Client] = None) -> None:
        self._config = config
        self._timeout_s = config.request_timeout_ms / 1000.0
        self._client = client
        # genai.Client exige a chave já na construção
        if self._client is None and config.gemini_api_key:
            self._client = genai.Client(
                api_key=config.gemini_api_key,
                http_options=types.HttpOptions(timeout=config.request_timeout_ms),
            )

    @property
    def has_credentials(self) -> bool:
        return self._client is not None

    def _require_client(self) -> genai.Client:
        if self._client is None:
            raise UpstreamError("Missing generative API key")
        return self._client

    async def generate(self, prompt: str, request_id: Optional[str] = None) -> str:
        """
        Gera texto a partir de um prompt e retorna a resposta completa.

        Raises:
            CompletionTimeoutError: Se a chamada exceder o timeout
            UpstreamError: Se a API falhar ou responder vazio
        """
        request_id_str = f"request_id={request_id}, " if request_id else ""
        client = self._require_client()
        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=self._config.gemini_model,
                    contents=prompt,
                ),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise CompletionTimeoutError(
                f"Request to generative API timed out after {self._timeout_s:.0f} seconds"
            ) from e
        except Exception as e:
            logger.error(
                f"Erro ao chamar Gemini: {request_id_str}model={self._config.gemini_model}, "
                f"error={type(e).__name__}: {e}"
            )
            raise UpstreamError(f"Generative API error: {e}") from e

        text = (response.text or "").strip()
        if not text:
            raise UpstreamError("Empty response received from generative API")

        logger.debug(f"Resposta do Gemini: {request_id_str}reply_length={len(text)}")
        return text

    async def generate_stream(self, prompt: str, request_id: Optional[str] = None) -> AsyncIterator[str]:
        """
        Gera texto em streaming, produzindo os fragmentos à medida que chegam.
        O timeout é reiniciado a cada fragmento.
        """
        request_id_str = f"request_id={request_id}, " if request_id else ""
        try:
            stream = await asyncio.wait_for(
                self._require_client().aio.models.generate_content_stream(
                    model=self._config.gemini_model,
                    contents=prompt,
                ),
                timeout=self._timeout_s,
            )
            iterator = stream.__aiter__()
            while True:
                try:
                    chunk = await asyncio.wait_for(iterator.__anext__(), timeout=self._timeout_s)
                except StopAsyncIteration:
                    break
                if chunk.text:
                    yield chunk.text
        except asyncio.TimeoutError as e:
            raise CompletionTimeoutError(
                f"Streaming request to generative API timed out after {self._timeout_s:.0f} seconds"
            ) from e
        except (CompletionTimeoutError, UpstreamError):
            raise
        except Exception as e:
            logger.error(
                f"Erro no streaming do Gemini: {request_id_str}model={self._config.gemini_model}, "
                f"error={type(e).__name__}: {e}"
            )
            raise UpstreamError(f"Generative API streaming error: {e}") from e

    async def improve_readability(self, text: str, request_id: Optional[str] = None) -> str:
        return await self.generate(READABILITY_PROMPT.format(text=text), request_id=request_id)

    def improve_readability_stream(self, text: str, request_id: Optional[str] = None) -> AsyncIterator[str]:
        return self.generate_stream(READABILITY_PROMPT.format(text=text), request_id=request_id)

    async def summarize(self, text: str, request_id: Optional[str] = None) -> str:
        return await self.generate(SUMMARY_PROMPT.format(text=text), request_id=request_id)

    async def recommend(
        self,
        interests: List[str],
        recent_articles: List[str],
        request_id: Optional[str] = None,
    ) -> str:
        prompt = RECOMMENDATIONS_PROMPT.format(
            interests=", ".join(interests),
            articles=", ".join(recent_articles),
        )
        return await self.generate(prompt, request_id=request_id)

    async def chat(self, history: List[Message], message: str, request_id: Optional[str] = None) -> str:
        """
        Conversa com o modelo generativo mantendo o histórico enviado pelo cliente.

        Mensagens system são ignoradas; assistant vira o papel "model" do Gemini.
        """
        request_id_str = f"request_id={request_id}, " if request_id else ""
        client = self._require_client()
        contents = [
            types.Content(
                role="model" if m.role == Role.ASSISTANT else "user",
                parts=[types.Part(text=m.content)],
            )
            for m in history
            if m.role != Role.SYSTEM
        ]
        try:
            session = client.aio.chats.create(model=self._config.gemini_model, history=contents)
            response = await asyncio.wait_for(session.send_message(message), timeout=self._timeout_s)
        except asyncio.TimeoutError as e:
            raise CompletionTimeoutError(
                f"Chat request to generative API timed out after {self._timeout_s:.0f} seconds"
            ) from e
        except Exception as e:
            logger.error(
                f"Erro no chat do Gemini: {request_id_str}model={self._config.gemini_model}, "
                f"history={len(contents)}, error={type(e).__name__}: {e}"
            )
            raise UpstreamError(f"Generative API chat error: {e}") from e

        text = (response.text or "").strip()
        if not text:
            raise UpstreamError("Empty response received from generative API")

        logger.debug(f"Resposta do chat Gemini: {request_id_str}history={len(contents)}, reply_length={len(text)}")
        return text
