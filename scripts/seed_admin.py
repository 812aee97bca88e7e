"""Seed the first manual super admin into the configured LMeve database"""

import argparse
import getpass
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from lmeve.database.gateway import DatabaseGateway
from lmeve.exceptions import LmeveException
from lmeve.security.auth import ensure_admin
from lmeve.services.settings_resolver import SettingsResolver
from lmeve.storage.files import get_storage


def seed_admin(username: str, password: str):
    """Create the admin account using the stored database settings"""

    print("\n" + "="*60)
    print("Seeding LMeve Super Admin")
    print("="*60)

    config = SettingsResolver(get_storage()).database_config({})
    print(f"\nDatabase: {config.username}@{config.host}:{config.port}/{config.database}")

    try:
        with DatabaseGateway().session(config) as conn:
            created = ensure_admin(conn, username, password)
    except LmeveException as e:
        print(f"\n[ERROR] Failed: {e.message}")
        raise

    if created:
        print(f"\n[OK] Super admin '{username}' created")
        print("\n[!] IMPORTANT: Change the password after first login!")
    else:
        print(f"\n[OK] User '{username}' already exists, nothing to do")
    print("="*60 + "\n")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the first LMeve super admin")
    parser.add_argument("--username", default="admin")
    args = parser.parse_args()
    seed_admin(args.username, getpass.getpass("Password: "))
