# DB connections

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from session_tracking.core.config import settings
from session_tracking.core.store import KeyValueStore

# Pool sizing only applies to server databases
engine_options = {} if settings.database_url.startswith("sqlite") else {
    "pool_size": 20,
    "max_overflow": 0
}

# Async engine for FastAPI and the CLI scripts
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **engine_options
)

AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False
)

store = KeyValueStore(AsyncSessionLocal, index_name=settings.gsi1_name)


async def get_store() -> KeyValueStore:
    """Dependency for getting the key-value store client"""
    return store


async def init_models():
    """Create the table and its index if they do not exist"""
    await store.create_tables()
