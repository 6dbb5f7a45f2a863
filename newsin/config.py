from dataclasses import dataclass
import os
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "y")


@dataclass(frozen=True)
class AppConfig:
    """
    Configurações principais da aplicação.

    Centraliza chaves de API, parâmetros dos provedores de IA
    e limites do pipeline de streaming do assistente.
    """
    perplexity_api_key: str = ""
    perplexity_base_url: str = "https://api.perplexity.ai"
    perplexity_model: str = "sonar-pro"
    perplexity_temperature: float = 0.4
    perplexity_max_tokens: int = 2500
    search_recency_filter: str = "day"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"
    readability_rewrite: bool = False  # segunda passada de reescrita via Gemini
    database_url: str = "sqlite:///./newsin.db"
    bot_api_key: str = ""
    env: str = "dev"  # "dev" ou "prod"
    default_system_prompt: str = "You are a helpful AI assistant for a news application."
    request_timeout_ms: int = 55000  # timeout por chamada aos provedores
    max_history_messages: int = 8  # mensagens não-system mantidas no contexto
    stream_min_chunk_chars: int = 40
    stream_max_chunk_chars: int = 400
    stream_flush_interval_ms: int = 1500

    @property
    def rewrite_enabled(self) -> bool:
        return self.readability_rewrite and bool(self.gemini_api_key)

    @classmethod
    def load_from_env(cls) -> "AppConfig":
        """
        Carrega configuração a partir de variáveis de ambiente.
        Primeiro tenta carregar do arquivo .env, depois do ambiente do sistema.
        Levanta erro explícito se algo crítico faltar em produção.
        """
        load_dotenv()

        perplexity_api_key = os.getenv("PERPLEXITY_API_KEY", "")
        gemini_api_key = os.getenv("GEMINI_API_KEY", "")
        bot_api_key = os.getenv("BOT_API_KEY", "")

        env = os.getenv("ENV", "dev").lower()
        if env not in ("dev", "prod"):
            logger.warning(f"ENV inválido '{env}', usando 'dev' como padrão")
            env = "dev"

        # Em produção, chaves da API de busca e do bot são obrigatórias
        if env == "prod":
            if not perplexity_api_key.strip():
                raise RuntimeError("ENV=prod requer PERPLEXITY_API_KEY definida.")
            if not bot_api_key.strip():
                raise RuntimeError(
                    "ENV=prod requer BOT_API_KEY definida. "
                    "Configure BOT_API_KEY no ambiente de produção."
                )
            logger.info("Modo PRODUÇÃO: PERPLEXITY_API_KEY e BOT_API_KEY validadas")
        else:
            if not perplexity_api_key.strip():
                logger.warning(
                    "⚠️  MODO DEV: PERPLEXITY_API_KEY não configurada. "
                    "Os endpoints do assistente responderão com erro de configuração."
                )
            if not bot_api_key.strip():
                logger.warning(
                    "⚠️  MODO DEV: BOT_API_KEY não configurada. "
                    "Endpoints aceitarão requisições sem autenticação."
                )

        readability_rewrite = _env_flag("READABILITY_REWRITE")
        if readability_rewrite and not gemini_api_key.strip():
            logger.warning(
                "READABILITY_REWRITE ativo mas GEMINI_API_KEY não definida, reescrita desabilitada"
            )

        return cls(
            perplexity_api_key=perplexity_api_key,
            perplexity_base_url=os.getenv("PERPLEXITY_BASE_URL", "https://api.perplexity.ai"),
            perplexity_model=os.getenv("PERPLEXITY_MODEL", "sonar-pro"),
            perplexity_temperature=float(os.getenv("PERPLEXITY_TEMPERATURE", "0.4")),
            perplexity_max_tokens=int(os.getenv("PERPLEXITY_MAX_TOKENS", "2500")),
            search_recency_filter=os.getenv("SEARCH_RECENCY_FILTER", "day"),
            gemini_api_key=gemini_api_key,
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
            readability_rewrite=readability_rewrite,
            database_url=os.getenv("DATABASE_URL", "sqlite:///./newsin.db"),
            bot_api_key=bot_api_key,
            env=env,
            request_timeout_ms=int(os.getenv("REQUEST_TIMEOUT_MS", "55000")),
            max_history_messages=int(os.getenv("MAX_HISTORY_MESSAGES", "8")),
            stream_min_chunk_chars=int(os.getenv("STREAM_MIN_CHUNK_CHARS", "40")),
            stream_max_chunk_chars=int(os.getenv("STREAM_MAX_CHUNK_CHARS", "400")),
            stream_flush_interval_ms=int(os.getenv("STREAM_FLUSH_INTERVAL_MS", "1500")),
        )
