from sqlalchemy.ext.asyncio import AsyncEngine
from sqlmodel import SQLModel
# registers the tables on SQLModel.metadata
from phonegate.schema import full_schema  # noqa: F401


async def create_all_tables(engine: AsyncEngine) -> None:
    """Dev/test convenience; deployed databases are migrated with alembic."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)