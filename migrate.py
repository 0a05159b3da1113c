#!/usr/bin/env python3
"""
Manage database migrations with Alembic.
"""
import sys
from pathlib import Path

# Project root on the path
root_dir = Path(__file__).parent
sys.path.insert(0, str(root_dir))

from alembic.config import Config
from alembic import command
from app.core.config import settings


def get_alembic_config():
    """Alembic configuration pointing at the configured database."""
    alembic_cfg = Config(str(root_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root_dir / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def create_migration(message: str):
    """Create a new autogenerated migration."""
    command.revision(get_alembic_config(), autogenerate=True, message=message)
    print(f"Migration created: {message}")


def run_migrations():
    """Apply pending migrations."""
    command.upgrade(get_alembic_config(), "head")
    print("Migrations applied")


def rollback_migration():
    """Roll back the last migration."""
    command.downgrade(get_alembic_config(), "-1")
    print("Rolled back one migration")


def show_history():
    command.history(get_alembic_config())


def show_current():
    command.current(get_alembic_config())


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage:")
        print("  python migrate.py create 'message'  # Create migration")
        print("  python migrate.py upgrade            # Apply migrations")
        print("  python migrate.py downgrade          # Roll back one")
        print("  python migrate.py history            # Show history")
        print("  python migrate.py current            # Show current revision")
        sys.exit(1)

    action = sys.argv[1]

    if action == "create":
        if len(sys.argv) < 3:
            print("Error: a message is required for the migration")
            sys.exit(1)
        create_migration(sys.argv[2])
    elif action == "upgrade":
        run_migrations()
    elif action == "downgrade":
        rollback_migration()
    elif action == "history":
        show_history()
    elif action == "current":
        show_current()
    else:
        print(f"Unknown action: {action}")
        sys.exit(1)
