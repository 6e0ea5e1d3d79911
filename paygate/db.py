from typing import Optional
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker
from .config import settings


def make_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, echo=False, future=True)


def make_session_factory(bind: AsyncEngine) -> sessionmaker:
    # expire_on_commit=False so rows can be read after the session closes
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine: AsyncEngine = make_engine(settings.database_url)
async_session = make_session_factory(engine)


async def init_db(bind: Optional[AsyncEngine] = None):
    """Create the transactions and items tables if missing."""
    async with (bind or engine).begin() as conn:
        # if you prefer migrations, run alembic instead
        await conn.run_sync(SQLModel.metadata.create_all)
