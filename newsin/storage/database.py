import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_engine_from_url(database_url: str):
    """
    Cria um engine SQLAlchemy a partir de uma URL de banco de dados.

    Para PostgreSQL, usa pool_pre_ping=True para detectar conexões perdidas.
    SQLite em memória usa StaticPool para que todas as sessões vejam o mesmo banco.
    """
    url = database_url.lower()
    is_postgres = "postgresql" in url or "postgres" in url

    if is_postgres:
        engine = create_engine(
            database_url,
            echo=False,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
        )
        logger.info("Engine PostgreSQL criado com pool_pre_ping=True")
    elif url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        logger.info("Engine SQLite em memória criado")
    else:
        # check_same_thread=False: FastAPI executa handlers síncronos em threads diferentes
        engine = create_engine(database_url, echo=False, connect_args={"check_same_thread": False})
        logger.info("Engine SQLite criado")

    return engine


def create_session_factory(database_url: str, create_tables: bool = False) -> sessionmaker:
    """
    Cria uma factory de sessões SQLAlchemy.

    Args:
        database_url: URL de conexão do banco
        create_tables: Se True, cria tabelas automaticamente (apenas para dev/test).
                       Em produção, use migrações Alembic!
    """
    # Importa os modelos para registrá-los no metadata antes do create_all
    from . import models  # noqa: F401

    engine = create_engine_from_url(database_url)

    if create_tables:
        logger.info("Criando tabelas automaticamente (modo dev/test)")
        Base.metadata.create_all(bind=engine)

    return sessionmaker(bind=engine, expire_on_commit=False)
