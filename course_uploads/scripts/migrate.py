#!/usr/bin/env python3
"""Apply the course upload database migrations with dbmate.

Waits for the database to accept connections, then runs ``dbmate up`` against
``db/migrations``.
"""

import asyncio
import logging
import os
import subprocess
import sys
import time
from pathlib import Path
from typing import Optional

import asyncpg

from course_uploads.utils import mask_database_url


logging.basicConfig(
    level=logging.INFO,
    format="[%(levelname)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "db" / "migrations"


async def _can_connect(database_url: str) -> bool:
    conn = await asyncpg.connect(database_url)
    await conn.close()
    return True


def wait_for_database(database_url: str, timeout: int = 60, interval: int = 2) -> None:
    """Block until the database accepts connections or ``timeout`` seconds pass."""
    logger.info(f"Waiting for database at {mask_database_url(database_url)}")

    start_time = time.time()
    while time.time() - start_time < timeout:
        try:
            if asyncio.run(_can_connect(database_url)):
                logger.info("Database is ready")
                return
        except (OSError, asyncpg.PostgresError):
            logger.debug("Database not ready yet, retrying...")

        time.sleep(interval)

    raise RuntimeError(f"Database not available after {timeout} seconds")


def run_command(command: list[str], cwd: Optional[str] = None, env: Optional[dict] = None) -> None:
    """Run a command and raise on failure."""
    logger.info(f"Running: {' '.join(command)}")
    result = subprocess.run(command, cwd=cwd, env=env, capture_output=True, text=True)

    if result.stdout:
        logger.info(result.stdout.strip())
    if result.returncode != 0:
        logger.error(f"Command failed with return code {result.returncode}")
        if result.stderr:
            logger.error(f"STDERR: {result.stderr}")
        raise subprocess.CalledProcessError(result.returncode, command)


def main() -> None:
    """Main migration function."""
    logger.info("Starting course uploads migration process")

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        logger.error("DATABASE_URL environment variable is required")
        sys.exit(1)

    migrations_dir = Path(os.environ.get("DBMATE_MIGRATIONS_DIR") or MIGRATIONS_DIR)
    if not migrations_dir.is_dir():
        logger.error(f"Migrations directory not found: {migrations_dir}")
        sys.exit(1)

    logger.info(f"App database: {mask_database_url(database_url)}")
    logger.info(f"Migrations: {migrations_dir}")

    wait_for_database(database_url)

    run_command(["dbmate", f"--migrations-dir={migrations_dir}", "--no-dump-schema", "up"])

    logger.info("Migration process completed successfully")


if __name__ == "__main__":
    main()
