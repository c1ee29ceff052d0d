import logging

logger = logging.getLogger(__name__)


async def init_models(drop_existing: bool = False) -> None:
    """Create every table registered on Base.metadata."""
    from runners_awareness.app.db.base import Base, engine
    # Imported for its side effect: registers the tables on Base.metadata
    from runners_awareness.app import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            if drop_existing:
                logger.warning("Dropping all tables before create (dev reset)")
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ready")
    except Exception:
        logger.exception("Failed to create database tables")
        raise
