# create_tables.py: run once to create missing tables and seed reference data (development helper)
import logging
import sys

from finance_api.core.config import settings
from finance_api.db.seed import seed_reference_data
from finance_api.db.session import Database

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main() -> int:
    db = Database(settings.DATABASE_URL)
    logger.info("Creating tables in the database (if not exist)...")
    try:
        db.create_all()
        session = db.session()
        try:
            seed_reference_data(session)
        finally:
            session.close()
        logger.info("Done.")
        return 0
    except Exception:
        logger.exception("Error creating tables:")
        return 1
    finally:
        db.dispose()


if __name__ == "__main__":
    sys.exit(main())
