from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import Field, SQLModel


class KeyValueEntry(SQLModel, table=True):
    __tablename__ = "kv_store"

    key: str = Field(primary_key=True, max_length=128)
    value: str


def create_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, echo=False, future=True)


async def init_db(engine: AsyncEngine) -> None:
    """Create database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
