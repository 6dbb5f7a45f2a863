import logging
import time
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Optional
from sqlalchemy.orm import Session, sessionmaker
from .models import Completion, Message, Role, UserBusinessContext
from .conversation import validate_messages, window_history
from .streaming import SentenceBuffer
from .errors import (
    InvalidConversationError,
    UpstreamError,
    is_timeout_error,
    STREAM_GENERIC_APOLOGY,
    STREAM_TIMEOUT_APOLOGY,
)
from .context import (
    ContextManager,
    ContextType,
    BaseSystemPromptProvider,
    UserProfileContextProvider,
    ResponseStyleProvider,
)
from ..config import AppConfig
from ..infra.perplexity_client import SearchCompletionClient, SearchStream
from ..infra.gemini_client import GenerativeTextClient
from ..storage.database import create_session_factory
from ..storage.repository import PreferencesRepository, preferences_to_context

logger = logging.getLogger(__name__)


def format_citations(citations: List[str]) -> str:
    """
    Formata a lista de fontes anexada ao final da resposta em streaming.
    """
    lines = [f"{i}. {url}" for i, url in enumerate(citations, start=1)]
    return "\n\nSources:\n" + "\n".join(lines)


class AssistantStream:
    """
    Texto da resposta em streaming, pronto para o StreamingResponse.

    aclose() libera o stream da API de busca mesmo que a iteração nunca
    tenha começado (ex: cliente desconectou antes da primeira leitura).
    """

    def __init__(self, search_stream: SearchStream, chunks: AsyncGenerator[str, None]) -> None:
        self._search_stream = search_stream
        self._chunks = chunks
        self._closed = False

    def __aiter__(self) -> "AssistantStream":
        return self

    async def __anext__(self) -> str:
        return await self._chunks.__anext__()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._chunks.aclose()
        await self._search_stream.close()


class AssistantEngine:
    """
    Núcleo lógico do assistente de notícias.

    - Monta o prompt do sistema com o perfil do usuário
    - Recorta e valida a conversa (alternância user/assistant)
    - Chama a API de busca (resposta completa ou streaming)
    - Reagrupa o streaming em frases e aplica a reescrita opcional via Gemini
    - Lê e grava as preferências dos usuários
    """

    def __init__(
        self,
        config: AppConfig,
        search_client: Optional[SearchCompletionClient] = None,
        text_client: Optional[GenerativeTextClient] = None,
        db_session_factory: Optional[sessionmaker] = None,
    ) -> None:
        self._config = config
        self._search = search_client or SearchCompletionClient(config)
        self._text = text_client or GenerativeTextClient(config)

        # Em produção, não criar tabelas automaticamente (usar Alembic)
        self._db_session_factory = db_session_factory or create_session_factory(
            config.database_url, create_tables=config.env == "dev"
        )

        self._context_manager = self._create_context_manager(config)

        db_type = "sqlite" if "sqlite" in config.database_url else "postgres" if "postgres" in config.database_url else "unknown"
        logger.info(
            f"AssistantEngine inicializado: search_model={config.perplexity_model}, "
            f"rewrite_enabled={config.rewrite_enabled}, database_type={db_type}, "
            f"max_history_messages={config.max_history_messages}"
        )

    def _create_context_manager(self, config: AppConfig) -> ContextManager:
        providers = [
            BaseSystemPromptProvider(config.default_system_prompt),
            UserProfileContextProvider(),
            ResponseStyleProvider(concise=False),
            ResponseStyleProvider(concise=True),
        ]
        return ContextManager(providers)

    @property
    def has_search_credentials(self) -> bool:
        return self._search.has_credentials

    @property
    def has_text_credentials(self) -> bool:
        return self._text.has_credentials

    def _new_stream_buffer(self) -> SentenceBuffer:
        return SentenceBuffer(
            min_chars=self._config.stream_min_chunk_chars,
            max_chars=self._config.stream_max_chunk_chars,
            flush_interval=self._config.stream_flush_interval_ms / 1000.0,
        )

    def prepare_messages(
        self,
        messages: List[Message],
        user_context: Optional[UserBusinessContext],
        context_type: ContextType,
        request_id: Optional[str] = None,
    ) -> List[Message]:
        """
        Monta a conversa que será enviada à API de busca.

        Uma única mensagem system (prompt do cliente + perfil + estilo) seguida
        da janela recente da conversa, validada para alternância.

        Raises:
            InvalidConversationError: Se nenhuma mensagem válida sobrar
        """
        client_system = next((m for m in messages if m.role == Role.SYSTEM), None)
        system_prompt = self._context_manager.build_system_prompt(
            context_types=[context_type],
            system_prompt=client_system.content if client_system else None,
            user_context=user_context,
            request_id=request_id,
        )

        history = window_history(
            [m for m in messages if m.role != Role.SYSTEM],
            self._config.max_history_messages,
        )
        validated = validate_messages([Message(role=Role.SYSTEM, content=system_prompt)] + history)

        logger.debug(
            f"Conversa preparada: request_id={request_id}, "
            f"received={len(messages)}, sent={len(validated)}, "
            f"has_user_context={user_context is not None}"
        )

        if not validated:
            raise InvalidConversationError("No valid messages to send to the search API")
        return validated

    async def complete(
        self,
        messages: List[Message],
        user_context: Optional[UserBusinessContext] = None,
        request_id: Optional[str] = None,
    ) -> Completion:
        """
        Gera a resposta completa do assistente (modo JSON).
        """
        prepared = self.prepare_messages(messages, user_context, ContextType.DEFAULT, request_id)
        completion = await self._search.complete(prepared, request_id=request_id)

        if self._config.rewrite_enabled:
            start_time = time.time()
            try:
                content = await self._text.improve_readability(completion.content, request_id=request_id)
            except Exception as e:
                logger.warning(
                    f"Reescrita de legibilidade falhou, usando resposta original: request_id={request_id}, "
                    f"error={type(e).__name__}: {e}"
                )
                return completion
            logger.info(
                f"Reescrita de legibilidade aplicada: request_id={request_id}, "
                f"before={len(completion.content)}, after={len(content)}, "
                f"duration_ms={(time.time() - start_time) * 1000:.2f}"
            )
            completion = Completion(content=content, citations=completion.citations)

        return completion

    async def open_stream(
        self,
        messages: List[Message],
        user_context: Optional[UserBusinessContext] = None,
        request_id: Optional[str] = None,
    ) -> "AssistantStream":
        """
        Abre o stream da API de busca e retorna o iterador de texto para o cliente.

        O stream é aberto aqui, antes da resposta HTTP começar, para que erros
        de status/autenticação ainda possam virar uma resposta 500 em JSON.
        """
        prepared = self.prepare_messages(messages, user_context, ContextType.STREAMING, request_id)
        search_stream = await self._search.open_stream(prepared, request_id=request_id)
        return AssistantStream(search_stream, self._relay_stream(search_stream, request_id))

    async def _relay_stream(self, search_stream: SearchStream, request_id: Optional[str]) -> AsyncIterator[str]:
        buffer = self._new_stream_buffer()
        start_time = time.time()
        sent_chars = 0
        source = self._rewrite_stream(search_stream, request_id) if self._config.rewrite_enabled else search_stream
        try:
            async for delta in source:
                for chunk in buffer.feed(delta):
                    sent_chars += len(chunk)
                    yield chunk

            remainder = buffer.flush()
            if remainder:
                sent_chars += len(remainder)
                yield remainder

            if search_stream.citations:
                yield format_citations(search_stream.citations)

            logger.info(
                f"Streaming concluído: request_id={request_id}, "
                f"upstream_chunks={search_stream.chunks_received}, sent_chars={sent_chars}, "
                f"citations={len(search_stream.citations)}, "
                f"duration_ms={(time.time() - start_time) * 1000:.2f}"
            )
        except Exception as e:
            # A resposta já começou: o erro vira texto no próprio stream
            logger.error(
                f"Erro durante o streaming: request_id={request_id}, sent_chars={sent_chars}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            yield "\n\n" + (STREAM_TIMEOUT_APOLOGY if is_timeout_error(e) else STREAM_GENERIC_APOLOGY)
        finally:
            if source is not search_stream:
                await source.aclose()
            await search_stream.close()

    async def _rewrite_stream(self, search_stream: SearchStream, request_id: Optional[str]) -> AsyncIterator[str]:
        """
        Junta a resposta inteira da busca e abre uma única reescrita em streaming.

        Se a reescrita falhar antes de produzir texto, o texto original é enviado.
        """
        raw = "".join([delta async for delta in search_stream]).strip()
        if not raw:
            return

        emitted = False
        try:
            async for text in self._text.improve_readability_stream(raw, request_id=request_id):
                emitted = True
                yield text
        except Exception as e:
            if emitted:
                raise
            logger.warning(
                f"Reescrita em streaming falhou, enviando texto original: request_id={request_id}, "
                f"error={type(e).__name__}: {e}"
            )
            yield raw

    async def summarize(self, text: str, request_id: Optional[str] = None) -> str:
        if not self._text.has_credentials:
            raise UpstreamError("Missing generative API key")
        return await self._text.summarize(text, request_id=request_id)

    async def recommend(
        self,
        interests: List[str],
        recent_articles: List[str],
        request_id: Optional[str] = None,
    ) -> str:
        if not self._text.has_credentials:
            raise UpstreamError("Missing generative API key")
        return await self._text.recommend(interests, recent_articles, request_id=request_id)

    async def chat(
        self,
        history: List[Message],
        message: str,
        request_id: Optional[str] = None,
    ) -> str:
        """
        Conversa direta com o modelo generativo (sem busca), com o histórico do cliente.
        """
        if not self._text.has_credentials:
            raise UpstreamError("Missing generative API key")
        return await self._text.chat(history, message, request_id=request_id)

    def get_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Retorna as preferências salvas do usuário, ou None se não existirem.
        """
        db_session: Session = self._db_session_factory()
        try:
            prefs = PreferencesRepository(db_session).get(user_id)
            if prefs is None:
                return None
            return self._preferences_to_dict(prefs)
        finally:
            db_session.close()

    def save_preferences(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        db_session: Session = self._db_session_factory()
        try:
            prefs = PreferencesRepository(db_session).upsert(user_id, fields)
            logger.info(f"Preferências salvas: user_id={user_id}")
            return self._preferences_to_dict(prefs)
        finally:
            db_session.close()

    def load_user_context(self, user_id: str) -> Optional[UserBusinessContext]:
        """
        Carrega o contexto de personalização salvo para o usuário.
        """
        db_session: Session = self._db_session_factory()
        try:
            prefs = PreferencesRepository(db_session).get(user_id)
            if prefs is None:
                logger.debug(f"Nenhuma preferência salva: user_id={user_id}")
                return None
            return preferences_to_context(prefs)
        finally:
            db_session.close()

    def check_database(self) -> bool:
        db_session: Session = self._db_session_factory()
        try:
            PreferencesRepository(db_session).get("__healthcheck__")
            return True
        finally:
            db_session.close()

    @staticmethod
    def _preferences_to_dict(prefs) -> Dict[str, Any]:
        return {
            "user_id": prefs.user_id,
            "display_name": prefs.display_name,
            "business_sector": prefs.business_sector,
            "business_other_sector": prefs.business_other_sector,
            "business_description": prefs.business_description,
            "role_type": prefs.role_type,
            "role_other_type": prefs.role_other_type,
            "themes_selected": list(prefs.themes_selected or []),
            "themes_custom": prefs.themes_custom,
            "updated_at": prefs.updated_at,
        }
