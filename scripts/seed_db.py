"""Create the first super admin so the remaining accounts can be managed through the API.

Usage: SEED_ADMIN_EMAIL=... SEED_ADMIN_PASSWORD=... python scripts/seed_db.py
"""

from __future__ import annotations

import importlib
import os
import sys

from dotenv import load_dotenv
from werkzeug.security import generate_password_hash

from config import get_settings_module

from office_presence.common.ids import new_id
from office_presence.common.validators import require_email, require_min_length
from office_presence.core.constants import MIN_PASSWORD_LENGTH
from office_presence.core.enums import Role, UserStatus
from office_presence.database.connection import DatabaseConnection, DBConfig
from office_presence.database.errors import DuplicateKeyError
from office_presence.users.model import User
from office_presence.users.mysql_user_repository import MySQLUserRepository


def main() -> int:
    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    db_config = dict(settings.DB_CONFIG)

    email = require_email(os.getenv("SEED_ADMIN_EMAIL", "superadmin@example.com"))
    password = require_min_length(os.getenv("SEED_ADMIN_PASSWORD", ""), "SEED_ADMIN_PASSWORD", MIN_PASSWORD_LENGTH)

    users = MySQLUserRepository(DatabaseConnection.get_instance(DBConfig.from_dict(db_config)))
    if users.get_by_email(email):
        print(f"SKIP: {email} already exists")
        return 0

    try:
        users.create_user(
            User(
                user_id=new_id(),
                name=os.getenv("SEED_ADMIN_NAME", "Super Admin"),
                email=email,
                password_hash=generate_password_hash(password),
                role=Role.SUPER_ADMIN,
                status=UserStatus.ACTIVE,
            )
        )
    except DuplicateKeyError as e:
        print(f"FAILED: {e}", file=sys.stderr)
        return 1

    print(
        f"OK: Created super admin {email} -> "
        f"{db_config.get('user')}@{db_config.get('host')}:{db_config.get('port', 3306)}/{db_config.get('database')}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
