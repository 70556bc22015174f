"""
Alumni Office Engine Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema, seeds default settings and makes sure the
system admin bot exists.  Every subsystem is wired here; no module-level
globals.

Usage::

    python main.py
"""

from __future__ import annotations

import atexit
import sys
from pathlib import Path

from alumni.config import get_config
from alumni.database import DatabaseManager
from alumni.logger import StructuredLogger, get_logger
from alumni.schema import initialize_schema
from alumni.services import ServiceContainer, create_services


def bootstrap() -> tuple[DatabaseManager, ServiceContainer]:
    """Wire dependencies and run the startup hooks."""
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting Alumni Office engine...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager (offline-first: Supabase optional, SQLite always)
    # ------------------------------------------------------------------
    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=Path(config.SQLITE_PATH),
        logger=StructuredLogger(name="database"),
    )
    # close() is idempotent; this covers exits that skip the caller's cleanup.
    atexit.register(db.close)

    # ------------------------------------------------------------------
    # 3. SQLite Schema Initialization (idempotent)
    # ------------------------------------------------------------------
    initialize_schema(db.sqlite, StructuredLogger(name="schema"))

    # ------------------------------------------------------------------
    # 4. Service Container (repositories + services, single composition root)
    # ------------------------------------------------------------------
    services = create_services(db=db, config=config)

    # ------------------------------------------------------------------
    # 5. Startup hooks
    # ------------------------------------------------------------------
    services["settings_service"].initialize_defaults()
    services["user_service"].ensure_system_admin(
        email=config.SYSTEM_ADMIN_EMAIL,
        password=config.SYSTEM_ADMIN_PASSWORD.get_secret_value(),
        first_name=config.SYSTEM_ADMIN_FIRST_NAME,
        last_name=config.SYSTEM_ADMIN_LAST_NAME,
    )

    logger.info(
        "Alumni Office engine ready (online=%s, pending sync=%d)",
        db.is_online, db.get_pending_sync_count(),
    )
    return db, services


def main() -> None:
    db, services = bootstrap()
    services["side_effect_runner"].shutdown()
    db.close()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n")
        sys.exit(1)
