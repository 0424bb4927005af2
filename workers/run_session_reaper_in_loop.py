#!/usr/bin/env python3
"""Session reaper: periodically frees expired upload sessions.

Expired sessions block new uploads for their course and instructor and keep
storage-side multipart uploads open until they are swept.
"""

import asyncio
import logging
import sys
from pathlib import Path


sys.path.insert(0, str(Path(__file__).parent.parent))

from course_uploads.adapters.storage import S3StorageAdapter
from course_uploads.config import get_config
from course_uploads.logging_config import setup_loki_logging
from course_uploads.orm import get_session_factory
from course_uploads.orm import initialize_engine
from course_uploads.services.ray_id_service import bind_ray_id
from course_uploads.services.ray_id_service import bind_upload_session
from course_uploads.utils import mask_database_url
from course_uploads.workers.session_reaper import reap_expired_sessions


config = get_config()
setup_loki_logging(config, "session-reaper")
logger = logging.getLogger(__name__)


async def run_session_reaper_loop():
    """Main reaper loop: sweep, then sleep."""
    initialize_engine(config.database_url)
    session_factory = get_session_factory()
    storage = S3StorageAdapter.from_config(config)

    logger.info("Starting session reaper service...")
    logger.info(f"Database: {mask_database_url(config.database_url)}")
    logger.info(f"Bucket: {config.s3_bucket}")
    logger.info(f"Batch size: {config.reaper_batch_size}")

    while True:
        bind_ray_id(None)
        bind_upload_session("-")
        try:
            logger.info("Reaper cycle starting...")
            stats = await reap_expired_sessions(session_factory, storage, config)
            logger.info(f"Reaper cycle complete: deleted={stats.deleted} abort_failures={stats.abort_failures}")

        except Exception as e:
            logger.error(f"Reaper cycle error: {e}", exc_info=True)

        logger.info(f"Reaper sleeping {config.reaper_sleep_seconds}s until next cycle...")
        await asyncio.sleep(config.reaper_sleep_seconds)


if __name__ == "__main__":
    asyncio.run(run_session_reaper_loop())
