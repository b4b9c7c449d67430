#!/usr/bin/env python3
"""
Manage database migrations with Alembic.
"""
import sys
from pathlib import Path

# Make the project importable when run from anywhere
root_dir = Path(__file__).parent
sys.path.insert(0, str(root_dir))

from alembic.config import Config
from alembic import command
from factory_erp.core.config import settings


def get_alembic_config():
    """Alembic config pointing at the configured database."""
    alembic_cfg = Config(str(root_dir / "alembic.ini"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def create_migration(message: str):
    alembic_cfg = get_alembic_config()
    command.revision(alembic_cfg, autogenerate=True, message=message)
    print(f"Migration created: {message}")


def run_migrations():
    alembic_cfg = get_alembic_config()
    command.upgrade(alembic_cfg, "head")
    print("Migrations applied")


def rollback_migration():
    alembic_cfg = get_alembic_config()
    command.downgrade(alembic_cfg, "-1")
    print("Rolled back one migration")


def show_history():
    command.history(get_alembic_config())


def show_current():
    command.current(get_alembic_config())


COMMANDS = {
    "upgrade": run_migrations,
    "downgrade": rollback_migration,
    "history": show_history,
    "current": show_current,
}


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage:")
        print("  python migrate.py create 'message'  # New autogenerated revision")
        print("  python migrate.py upgrade            # Apply pending migrations")
        print("  python migrate.py downgrade          # Roll back one revision")
        print("  python migrate.py history            # Show history")
        print("  python migrate.py current            # Show current revision")
        sys.exit(1)

    action = sys.argv[1]

    if action == "create":
        if len(sys.argv) < 3:
            print("Error: a message is required for the migration")
            sys.exit(1)
        create_migration(sys.argv[2])
    elif action in COMMANDS:
        COMMANDS[action]()
    else:
        print(f"Unknown action: {action}")
        sys.exit(1)
