from __future__ import annotations
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .core.config import get_settings
from .models import Base

settings = get_settings()

def build_engine(url: str) -> AsyncEngine:
    # sqlite serialises writers; give concurrent check-ins time to queue instead of failing
    connect_args = {"timeout": 30} if url.startswith("sqlite") else {}
    return create_async_engine(url, echo=False, connect_args=connect_args)

def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)

engine = build_engine(settings.database_url)
async_session_maker = build_session_maker(engine)

async def init_db(bind: AsyncEngine | None = None) -> None:
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def dispose_db() -> None:
    await engine.dispose()

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session
