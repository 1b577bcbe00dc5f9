"""Create the configured database and apply database/schema.sql.

Usage: APP_ENV=development python scripts/init_db.py
"""
from __future__ import annotations

import importlib
import sys

from dotenv import load_dotenv

from config import get_settings_module

from office_presence.database.bootstrap import apply_schema, list_tables
from office_presence.logging_config import setup_logging
from office_presence.main import SCHEMA_PATH


def main() -> int:
    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    setup_logging(getattr(settings, "LOG_LEVEL", "INFO"))
    db_config = dict(settings.DB_CONFIG)

    executed = apply_schema(db_config, schema_path=SCHEMA_PATH)
    tables = list_tables(db_config)
    print(f"{db_config['database']}: {executed} statements, tables: {', '.join(tables)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
