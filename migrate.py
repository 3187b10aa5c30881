import asyncio

from sqlmodel import SQLModel

from common.db import dispose_engine, init_db_engine
from common.logger import Level, Logger
from common.models import ApiConfig, Campaign, Contribution, SystemLog  # noqa: F401  registers the tables
from ingest.config import load_config


async def main() -> None:
    cfg = load_config()
    if not cfg.uses_database:
        raise RuntimeError("DATABASE_URL is not set")
    Logger.configure("migrate", level=Level.parse(cfg.log_level))

    engine = init_db_engine(cfg.database_url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        Logger.info("Tables created: %s", ", ".join(sorted(SQLModel.metadata.tables)))
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
