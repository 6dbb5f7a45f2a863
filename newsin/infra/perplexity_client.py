import asyncio
import logging
import time
from typing import AsyncIterator, Dict, List, Optional
from openai import AsyncOpenAI, APITimeoutError, APIStatusError, APIError
from ..core.models import Completion, Message
from ..core.errors import CompletionTimeoutError, UpstreamError, InvalidConversationError
from ..config import AppConfig

logger = logging.getLogger(__name__)

EMPTY_COMPLETION_FALLBACK = "I'm sorry, but I couldn't generate a response. Please try again."


class SearchStream:
    """
    Stream de resposta da API de busca.

    Itera sobre os deltas de texto e guarda as citações recebidas nos chunks.
    O timeout é de inatividade: reinicia a cada chunk recebido.
    """

    def __init__(self, stream, idle_timeout_s: float, request_id: Optional[str] = None) -> None:
        self._stream = stream
        self._idle_timeout_s = idle_timeout_s
        self._request_id = request_id
        self.citations: List[str] = []
        self.chunks_received = 0

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        iterator = self._stream.__aiter__()
        while True:
            try:
                chunk = await asyncio.wait_for(iterator.__anext__(), timeout=self._idle_timeout_s)
            except StopAsyncIteration:
                break
            except asyncio.TimeoutError as e:
                raise CompletionTimeoutError(
                    f"Stream processing timed out after {self._idle_timeout_s:.0f} seconds"
                ) from e
            except APITimeoutError as e:
                raise CompletionTimeoutError(f"Stream processing timed out: {e}") from e

            self.chunks_received += 1

            # Perplexity repete a lista de citações em todos os chunks
            citations = getattr(chunk, "citations", None)
            if citations:
                self.citations = list(citations)

            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta is not None and delta.content:
                yield delta.content

    async def close(self) -> None:
        try:
            await self._stream.close()
        except Exception as e:
            logger.debug(f"Erro ao fechar stream da API de busca: request_id={self._request_id}, error={e}")


class SearchCompletionClient:
    """
    Encapsula chamadas à API de busca (Perplexity, compatível com OpenAI).
    Centraliza payload, timeout e tratamento de erros.
    Não faz retry: cada falha é repassada uma única vez ao chamador.
    """

    def __init__(self, config: AppConfig, client: Optional[AsyncOpenAI] = None) -> None:
        self._config = config
        self._timeout_s = config.request_timeout_ms / 1000.0
        self._client = client or AsyncOpenAI(
            api_key=config.perplexity_api_key or "missing",
            base_url=config.perplexity_base_url,
            timeout=self._timeout_s,
            max_retries=0,
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self._config.perplexity_api_key)

    def build_payload(self, messages: List[Message]) -> List[Dict[str, str]]:
        """
        Constrói a lista de mensagens no formato esperado pela API.
        """
        return [{"role": m.role.value, "content": m.content} for m in messages]

    def _request_kwargs(self, messages: List[Message], stream: bool) -> Dict:
        if not messages:
            raise InvalidConversationError("No valid messages to send to the search API")
        return {
            "model": self._config.perplexity_model,
            "messages": self.build_payload(messages),
            "temperature": self._config.perplexity_temperature,
            "max_tokens": self._config.perplexity_max_tokens,
            "stream": stream,
            "extra_body": {"search_recency_filter": self._config.search_recency_filter},
        }

    async def complete(self, messages: List[Message], request_id: Optional[str] = None) -> Completion:
        """
        Envia a conversa e retorna o texto completo com as citações.

        Raises:
            CompletionTimeoutError: Se a chamada exceder o timeout
            UpstreamError: Se a API responder com erro
        """
        kwargs = self._request_kwargs(messages, stream=False)
        request_id_str = f"request_id={request_id}, " if request_id else ""
        logger.debug(
            f"Chamando API de busca: {request_id_str}model={self._config.perplexity_model}, "
            f"num_messages={len(messages)}"
        )

        start_time = time.time()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=self._timeout_s,
            )
        except (asyncio.TimeoutError, APITimeoutError) as e:
            raise CompletionTimeoutError(
                f"Request to search API timed out after {self._timeout_s:.0f} seconds"
            ) from e
        except APIStatusError as e:
            logger.error(
                f"API de busca respondeu com erro: {request_id_str}status={e.status_code}, body={e.message}"
            )
            raise UpstreamError(f"API request failed with status {e.status_code}: {e.message}") from e
        except APIError as e:
            raise UpstreamError(f"Search API error: {e}") from e
        duration_ms = (time.time() - start_time) * 1000

        content = ""
        if response.choices and response.choices[0].message is not None:
            content = (response.choices[0].message.content or "").strip()
        if not content:
            logger.warning(f"Resposta vazia da API de busca: {request_id_str}usando texto padrão")
            content = EMPTY_COMPLETION_FALLBACK

        citations = list(getattr(response, "citations", None) or [])

        logger.info(
            f"Chamada à API de busca bem-sucedida: {request_id_str}model={self._config.perplexity_model}, "
            f"reply_length={len(content)}, citations={len(citations)}, duration_ms={duration_ms:.2f}"
        )
        return Completion(content=content, citations=citations)

    async def open_stream(self, messages: List[Message], request_id: Optional[str] = None) -> SearchStream:
        """
        Abre o stream de resposta. Erros de status/autenticação são levantados aqui,
        antes de qualquer texto ser enviado ao cliente.
        """
        kwargs = self._request_kwargs(messages, stream=True)
        request_id_str = f"request_id={request_id}, " if request_id else ""
        logger.debug(
            f"Abrindo stream da API de busca: {request_id_str}model={self._config.perplexity_model}, "
            f"num_messages={len(messages)}"
        )

        try:
            stream = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=self._timeout_s,
            )
        except (asyncio.TimeoutError, APITimeoutError) as e:
            raise CompletionTimeoutError(
                f"Streaming request to search API timed out after {self._timeout_s:.0f} seconds"
            ) from e
        except APIStatusError as e:
            logger.error(
                f"API de busca (streaming) respondeu com erro: {request_id_str}"
                f"status={e.status_code}, body={e.message}"
            )
            raise UpstreamError(
                f"API streaming request failed with status {e.status_code}: {e.message}"
            ) from e
        except APIError as e:
            raise UpstreamError(f"Search API streaming error: {e}") from e

        logger.info(f"Stream da API de busca aberto: {request_id_str}model={self._config.perplexity_model}")
        return SearchStream(stream, idle_timeout_s=self._timeout_s, request_id=request_id)
