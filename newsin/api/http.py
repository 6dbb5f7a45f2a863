import logging
import time
from datetime import datetime
from uuid import uuid4
from fastapi import FastAPI, HTTPException, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Any, Dict, Optional, List
from pydantic import BaseModel, ConfigDict, Field
from ..config import AppConfig
from ..core.engine import AssistantEngine
from ..core.conversation import messages_from_pairs
from ..core.models import BusinessInfo, RoleInfo, ThemesInfo, UserBusinessContext
from ..core.errors import (
    is_timeout_error,
    GENERIC_APOLOGY,
    INTERNAL_APOLOGY,
    MISSING_KEY_APOLOGY,
    STREAM_GENERIC_APOLOGY,
    STREAM_TIMEOUT_APOLOGY,
    TIMEOUT_APOLOGY,
)

logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatMessageIn(BaseModel):
    role: str
    content: str


class BusinessIn(CamelModel):
    sector: Optional[str] = None
    other_sector: Optional[str] = Field(default=None, alias="otherSector")
    description: Optional[str] = None


class RoleIn(CamelModel):
    type: Optional[str] = None
    other_type: Optional[str] = Field(default=None, alias="otherType")


class ThemesIn(CamelModel):
    selected: List[str] = Field(default_factory=list)
    custom: Optional[str] = None


class UserContextIn(CamelModel):
    business: Optional[BusinessIn] = None
    role: Optional[RoleIn] = None
    themes: Optional[ThemesIn] = None

    def to_domain(self) -> UserBusinessContext:
        business = self.business or BusinessIn()
        role = self.role or RoleIn()
        themes = self.themes or ThemesIn()
        return UserBusinessContext(
            business=BusinessInfo(
                sector=business.sector,
                other_sector=business.other_sector,
                description=business.description,
            ),
            role=RoleInfo(type=role.type, other_type=role.other_type),
            themes=ThemesInfo(selected=list(themes.selected), custom=themes.custom),
        )


class AssistantRequest(CamelModel):
    messages: List[ChatMessageIn]
    user_context: Optional[UserContextIn] = Field(default=None, alias="userContext")
    user_id: Optional[str] = Field(default=None, alias="userId")


class AssistantResponse(BaseModel):
    content: str
    citations: List[str] = Field(default_factory=list)


class PreferencesIn(CamelModel):
    display_name: Optional[str] = Field(default=None, alias="displayName")
    business: Optional[BusinessIn] = None
    role: Optional[RoleIn] = None
    themes: Optional[ThemesIn] = None


class PreferencesOut(CamelModel):
    user_id: str = Field(alias="userId")
    display_name: Optional[str] = Field(default=None, alias="displayName")
    business: BusinessIn
    role: RoleIn
    themes: ThemesIn
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")


class SummarizeRequest(BaseModel):
    text: str = Field(min_length=1)


class RecommendationsRequest(CamelModel):
    interests: List[str] = Field(default_factory=list)
    recent_articles: List[str] = Field(default_factory=list, alias="recentArticles")


class ChatRequest(BaseModel):
    history: List[ChatMessageIn] = Field(default_factory=list)
    message: str = Field(min_length=1)


class TextResponse(BaseModel):
    content: str


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware que gera request_id único para cada requisição
    e adiciona aos logs e headers de resposta.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = uuid4().hex[:16]
        request.state.request_id = request_id

        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        # Para streaming, mede apenas até o início da resposta
        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Request processado: request_id={request_id}, "
            f"method={request.method}, path={request.url.path}, "
            f"status={response.status_code}, duration_ms={duration_ms:.2f}"
        )
        return response


def require_api_key(config: AppConfig, x_api_key: Optional[str]) -> None:
    """
    Valida API key baseado no ambiente.

    Em produção (ENV=prod), sempre exige API key.
    Em desenvolvimento (ENV=dev), só exige se BOT_API_KEY estiver configurada.
    """
    expected_key = config.bot_api_key or ""

    if config.env == "prod":
        if not x_api_key or x_api_key != expected_key:
            logger.warning("Tentativa de acesso não autorizado em PRODUÇÃO")
            raise HTTPException(status_code=401, detail="Invalid API key")
    elif expected_key.strip():
        if x_api_key != expected_key:
            logger.warning("Tentativa de acesso não autorizado em DEV")
            raise HTTPException(status_code=401, detail="Invalid API key")


def mask_user_id(user_id: Optional[str]) -> str:
    """
    Mascara o ID do usuário para logs (primeiros e últimos 4 caracteres).
    Ex: "Xk29aaaaaaaaQp1z" -> "Xk29****Qp1z"
    """
    if not user_id:
        return "anonymous"
    if len(user_id) <= 8:
        return "****"
    return f"{user_id[:4]}****{user_id[-4:]}"


def _is_messages_error(errors: List[Dict[str, Any]]) -> bool:
    """
    Indica se a validação falhou por causa do array messages
    (ausente, corpo vazio ou itens inválidos).
    """
    for err in errors:
        loc = tuple(err.get("loc", ()))
        if loc == ("body",) or loc[:2] == ("body", "messages"):
            return True
    return False


def _preferences_payload(prefs: Dict[str, Any]) -> PreferencesOut:
    return PreferencesOut(
        user_id=prefs["user_id"],
        display_name=prefs.get("display_name"),
        business=BusinessIn(
            sector=prefs.get("business_sector"),
            other_sector=prefs.get("business_other_sector"),
            description=prefs.get("business_description"),
        ),
        role=RoleIn(type=prefs.get("role_type"), other_type=prefs.get("role_other_type")),
        themes=ThemesIn(selected=prefs.get("themes_selected") or [], custom=prefs.get("themes_custom")),
        updated_at=prefs.get("updated_at"),
    )


def _preferences_fields(payload: PreferencesIn) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    if payload.display_name is not None:
        fields["display_name"] = payload.display_name
    if payload.business is not None:
        fields["business_sector"] = payload.business.sector
        fields["business_other_sector"] = payload.business.other_sector
        fields["business_description"] = payload.business.description
    if payload.role is not None:
        fields["role_type"] = payload.role.type
        fields["role_other_type"] = payload.role.other_type
    if payload.themes is not None:
        fields["themes_selected"] = list(payload.themes.selected)
        fields["themes_custom"] = payload.themes.custom
    return fields


def create_app(
    config: Optional[AppConfig] = None,
    engine: Optional[AssistantEngine] = None,
) -> FastAPI:
    """
    Cria a aplicação FastAPI e injeta dependências principais (config + engine).
    """
    config = config or AppConfig.load_from_env()
    engine = engine or AssistantEngine(config=config)

    app = FastAPI(
        title="Newsin Assistant API",
        version="0.1.0",
        description="API do assistente de notícias personalizado.",
    )

    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if request.url.path.startswith("/assistant/api") and _is_messages_error(errors):
            error = "Invalid request: messages array is required"
        else:
            error = "Invalid request"
        logger.warning(f"Requisição inválida: path={request.url.path}, errors={len(errors)}")
        return JSONResponse(
            status_code=400,
            content={"error": error, "detail": jsonable_encoder(errors)},
        )

    async def resolve_user_context(payload: AssistantRequest) -> Optional[UserBusinessContext]:
        if payload.user_context is not None:
            return payload.user_context.to_domain()
        if payload.user_id:
            return await run_in_threadpool(engine.load_user_context, payload.user_id)
        return None

    def missing_key_response() -> JSONResponse:
        logger.error(
            "PERPLEXITY_API_KEY não configurada - defina a variável no ambiente ou no arquivo .env"
        )
        return JSONResponse(
            status_code=500,
            content={"content": MISSING_KEY_APOLOGY, "error": "Missing API key"},
        )

    @app.get("/health")
    def health_check():
        """
        Endpoint de health check para monitoramento e Docker healthchecks.
        """
        db_ok = True
        try:
            engine.check_database()
        except Exception as e:
            logger.warning(f"Database health check falhou: {e}")
            db_ok = False

        status = "healthy" if (db_ok and engine.has_search_credentials) else "degraded"
        return {
            "status": status,
            "database": "ok" if db_ok else "error",
            "search_api": "configured" if engine.has_search_credentials else "missing_key",
            "generative_api": "configured" if engine.has_text_credentials else "missing_key",
            "rewrite_enabled": config.rewrite_enabled,
        }

    @app.post("/assistant/api", response_model=AssistantResponse)
    async def assistant_endpoint(
        payload: AssistantRequest,
        request: Request,
        x_api_key: Optional[str] = Header(default=None, alias="X-API-KEY"),
    ):
        request_id = getattr(request.state, "request_id", "unknown")
        require_api_key(config, x_api_key)

        logger.info(
            f"Recebida requisição /assistant/api: request_id={request_id}, "
            f"message_count={len(payload.messages)}, has_user_context={payload.user_context is not None}, "
            f"user_id={mask_user_id(payload.user_id)}"
        )

        if not engine.has_search_credentials:
            return missing_key_response()

        start_time = time.time()
        try:
            user_context = await resolve_user_context(payload)
            messages = messages_from_pairs((m.role, m.content) for m in payload.messages)
        except Exception as e:
            logger.error(
                f"Erro ao preparar requisição do assistente: request_id={request_id}, "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
            return JSONResponse(status_code=500, content={"content": INTERNAL_APOLOGY, "error": str(e)})

        try:
            completion = await engine.complete(messages, user_context, request_id=request_id)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Erro ao consultar API de busca: request_id={request_id}, "
                f"duration_ms={duration_ms:.2f}, error={type(e).__name__}: {e}",
                exc_info=True,
            )
            content = TIMEOUT_APOLOGY if is_timeout_error(e) else GENERIC_APOLOGY
            return JSONResponse(status_code=500, content={"content": content, "error": str(e)})

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Resposta gerada: request_id={request_id}, reply_length={len(completion.content)}, "
            f"citations={len(completion.citations)}, duration_ms={duration_ms:.2f}"
        )
        return AssistantResponse(content=completion.content, citations=completion.citations)

    @app.post("/assistant/api/stream")
    async def assistant_stream_endpoint(
        payload: AssistantRequest,
        request: Request,
        x_api_key: Optional[str] = Header(default=None, alias="X-API-KEY"),
    ):
        request_id = getattr(request.state, "request_id", "unknown")
        require_api_key(config, x_api_key)

        logger.info(
            f"Recebida requisição /assistant/api/stream: request_id={request_id}, "
            f"message_count={len(payload.messages)}, has_user_context={payload.user_context is not None}, "
            f"user_id={mask_user_id(payload.user_id)}"
        )

        if not engine.has_search_credentials:
            return missing_key_response()

        start_time = time.time()
        try:
            user_context = await resolve_user_context(payload)
            messages = messages_from_pairs((m.role, m.content) for m in payload.messages)
            text_stream = await engine.open_stream(messages, user_context, request_id=request_id)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Erro ao abrir streaming: request_id={request_id}, "
                f"duration_ms={duration_ms:.2f}, error={type(e).__name__}: {e}",
                exc_info=True,
            )
            content = STREAM_TIMEOUT_APOLOGY if is_timeout_error(e) else STREAM_GENERIC_APOLOGY
            return JSONResponse(status_code=500, content={"error": str(e), "content": content})

        return StreamingResponse(
            text_stream,
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
            background=BackgroundTask(text_stream.aclose),
        )

    @app.post("/assistant/summarize", response_model=TextResponse)
    async def summarize_endpoint(
        payload: SummarizeRequest,
        request: Request,
        x_api_key: Optional[str] = Header(default=None, alias="X-API-KEY"),
    ):
        request_id = getattr(request.state, "request_id", "unknown")
        require_api_key(config, x_api_key)
        try:
            summary = await engine.summarize(payload.text, request_id=request_id)
        except Exception as e:
            logger.error(
                f"Erro ao resumir texto: request_id={request_id}, error={type(e).__name__}: {e}",
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={"content": "An error occurred while generating content.", "error": str(e)},
            )
        return TextResponse(content=summary)

    @app.post("/assistant/recommendations", response_model=TextResponse)
    async def recommendations_endpoint(
        payload: RecommendationsRequest,
        request: Request,
        x_api_key: Optional[str] = Header(default=None, alias="X-API-KEY"),
    ):
        request_id = getattr(request.state, "request_id", "unknown")
        require_api_key(config, x_api_key)
        try:
            content = await engine.recommend(payload.interests, payload.recent_articles, request_id=request_id)
        except Exception as e:
            logger.error(
                f"Erro ao gerar recomendações: request_id={request_id}, error={type(e).__name__}: {e}",
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={"content": "An error occurred while generating content.", "error": str(e)},
            )
        return TextResponse(content=content)

    @app.post("/assistant/chat", response_model=TextResponse)
    async def chat_endpoint(
        payload: ChatRequest,
        request: Request,
        x_api_key: Optional[str] = Header(default=None, alias="X-API-KEY"),
    ):
        request_id = getattr(request.state, "request_id", "unknown")
        require_api_key(config, x_api_key)
        history = messages_from_pairs((m.role, m.content) for m in payload.history)
        try:
            content = await engine.chat(history, payload.message, request_id=request_id)
        except Exception as e:
            logger.error(
                f"Erro no chat generativo: request_id={request_id}, "
                f"history={len(history)}, error={type(e).__name__}: {e}",
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={"content": "An error occurred in the chat session.", "error": str(e)},
            )
        return TextResponse(content=content)

    @app.get("/users/{user_id}/preferences", response_model=PreferencesOut, response_model_by_alias=True)
    def get_preferences(
        user_id: str,
        request: Request,
        x_api_key: Optional[str] = Header(default=None, alias="X-API-KEY"),
    ):
        request_id = getattr(request.state, "request_id", "unknown")
        require_api_key(config, x_api_key)

        prefs = engine.get_preferences(user_id)
        if prefs is None:
            logger.info(
                f"Preferências não encontradas: request_id={request_id}, user_id={mask_user_id(user_id)}"
            )
            raise HTTPException(status_code=404, detail="Preferences not found")
        return _preferences_payload(prefs)

    @app.put("/users/{user_id}/preferences", response_model=PreferencesOut, response_model_by_alias=True)
    def put_preferences(
        user_id: str,
        payload: PreferencesIn,
        request: Request,
        x_api_key: Optional[str] = Header(default=None, alias="X-API-KEY"),
    ):
        request_id = getattr(request.state, "request_id", "unknown")
        require_api_key(config, x_api_key)

        try:
            prefs = engine.save_preferences(user_id, _preferences_fields(payload))
        except Exception as e:
            logger.error(
                f"Erro ao salvar preferências: request_id={request_id}, "
                f"user_id={mask_user_id(user_id)}, error={type(e).__name__}: {e}",
                exc_info=True,
            )
            raise HTTPException(
                status_code=500,
                detail="Internal error while saving preferences. Please try again later.",
            )
        return _preferences_payload(prefs)

    return app
