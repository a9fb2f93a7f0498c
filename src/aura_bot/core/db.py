
"""Factory de sessão do SQLAlchemy 2 (catálogo de famílias)."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

def create_session_factory(database_url: str, **engine_kwargs):
    """Cria SessionFactory síncrona para SQLAlchemy 2.

    Usada via asyncio.to_thread pelo repositório de catálogo.

    :param database_url: URL completa do banco (ex.: mysql+pymysql).
    :param engine_kwargs: repassados a create_engine (ex.: poolclass nos testes).
    :return: sessionmaker configurado.
    """
    engine = create_engine(database_url, pool_pre_ping=True, future=True, **engine_kwargs)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
