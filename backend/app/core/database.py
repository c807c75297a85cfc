"""
Configurazione Database - SQLAlchemy 2.0 Async
Progetto: Sales Tracker (Abbonamenti e Rate)

Definisce engine, session factory e dependency injection per FastAPI.
La tabella client_sales_tracker è l'unico stato persistente.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# Engine Async SQLAlchemy 2.0
# ------------------------------------------------------------
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)


# ------------------------------------------------------------
# Session Factory
# ------------------------------------------------------------
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency injection per FastAPI.

    Una sessione per richiesta, chiusa automaticamente al termine.
    In caso di eccezione la transazione viene annullata.

    Yields:
        AsyncSession: Sessione database async
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Verifica che il database sia raggiungibile all'avvio.

    Raises:
        Exception: Propaga l'errore di connessione dopo averlo loggato
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Connessione al database stabilita con successo")
    except Exception as e:
        logger.error("Errore connessione database: %s", e)
        raise


async def create_tables() -> None:
    """Crea (se mancanti) le tabelle dichiarate nei modelli."""
    from app.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tabelle create/verificate")


async def drop_tables() -> None:
    """Elimina tutte le tabelle dichiarate nei modelli."""
    from app.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Tabelle eliminate")


async def close_db() -> None:
    """Chiude le connessioni del pool. Da chiamare allo shutdown."""
    await engine.dispose()
    logger.info("Connessioni database chiuse")
