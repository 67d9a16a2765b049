import asyncio

from app.core.logger import setup_logger
from app.db.session import SessionLocal
from app.services.historizer import capture_snapshots, store_snapshots
from app.services.leaderboards import DbEnrichment
from app.services.relic import open_relic_client

logger = setup_logger("historize_leaderboards")


async def _capture(db):
    async with open_relic_client() as client:
        return await capture_snapshots(client, DbEnrichment(db))


def main():
    db = SessionLocal()
    try:
        result = asyncio.run(_capture(db))
        inserted = store_snapshots(db, result.snapshots)
        db.commit()
        logger.info(
            "ok: %d snapshots stored, %d modes failed%s",
            inserted,
            len(result.failed_modes),
            f" ({', '.join(result.failed_modes)})" if result.failed_modes else "",
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
