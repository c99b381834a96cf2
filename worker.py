#!/usr/bin/env python
"""
Sync Worker

Runs the channel sync scheduler without the HTTP API:
1. Pulls reservations every PULL_INTERVAL_SECONDS
2. Pushes availability and rates every PUSH_INTERVAL_SECONDS

Run with:
    python worker.py

Or with environment:
    PULL_INTERVAL_SECONDS=300 python worker.py
"""

import asyncio
import logging
import signal
import sys

from roomsync.config import get_settings
from roomsync.database import SessionLocal, create_tables
from roomsync.services.channel_clients import default_registry
from roomsync.services.credential_vault import CredentialVault
from roomsync.services.event_bus import EventBus
from roomsync.services.scheduler import SyncScheduler
from roomsync.services.sync_orchestrator import SyncOrchestrator
from roomsync.utils.logging_config import setup_logging

logger = logging.getLogger("worker")


async def run_worker():
    """Main worker loop"""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json, include_uvicorn=False)

    logger.info("=" * 50)
    logger.info("Starting Sync Worker")
    logger.info(f"Pull interval: {settings.pull_interval_seconds}s")
    logger.info(f"Push interval: {settings.push_interval_seconds}s")
    logger.info(f"Worker threads: {settings.sync_worker_threads}")
    logger.info("=" * 50)

    create_tables()

    vault = CredentialVault(settings.secret_key)
    clients = default_registry(settings)
    bus = EventBus()

    scheduler = SyncScheduler(
        SessionLocal,
        lambda db: SyncOrchestrator.build(db, vault, clients, settings, bus),
        settings
    )
    scheduler.attach(bus)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler():
        """Handle shutdown signals gracefully"""
        logger.info("Received shutdown signal, finishing running syncs...")
        stop.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, signal_handler)

    scheduler.start()
    await stop.wait()
    await scheduler.shutdown()

    logger.info("Worker shutdown complete")


if __name__ == "__main__":
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.critical(f"Worker crashed: {e}")
        sys.exit(1)
