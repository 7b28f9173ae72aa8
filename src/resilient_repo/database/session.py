from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from resilient_repo.config.settings import Settings


def create_engine_from_settings(settings: Settings, **engine_kwargs) -> AsyncEngine:
    """
    Create the AsyncEngine that connection factories open connections from.

    Pooling is left entirely to the engine / driver; repositories never hold on to
    a connection beyond a single operation.
    """
    options = {
        "echo": settings.SQLALCHEMY_ECHO,
        "pool_pre_ping": settings.DB_POOL_PRE_PING,  # Enables connection health checks
    }
    options.update(engine_kwargs)
    return create_async_engine(settings.DATABASE_URL, **options)
