import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from regtrack.core.config import settings

logger = structlog.get_logger()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.APP_DEBUG,
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=5,
    pool_pre_ping=True,               # Drop stale connections before use
    pool_recycle=1800,                 # Recycle connections every 30 min
    pool_timeout=30,
    connect_args={
        "server_settings": {
            "statement_timeout": "30000",                    # 30s max per SQL statement
            "idle_in_transaction_session_timeout": "60000",
            "lock_timeout": "10000",                         # 10s max waiting for a row lock
        },
        "command_timeout": 30,
    },
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass
