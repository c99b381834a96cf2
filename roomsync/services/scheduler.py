"""
Sync Scheduler

Runs orchestrator jobs on a small thread pool, fed by:
- an APScheduler interval job for "pull" (reservation ingestion, short interval)
- an APScheduler interval job for "push" (availability and rate resync plus sync log pruning)
- manual triggers from the admin API
- real-time pushes for booking events

Each trigger takes the next generation number for its kind. A job that
reaches a worker after a newer job of the same kind has already started is
abandoned as "superseded"; started jobs always run to completion.
"""

import asyncio
import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..utils.logging_config import log_context
from .event_bus import BOOKING_EVENTS, EventBus
from .sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

KIND_PUSH = "push"
KIND_PULL = "pull"
KIND_FULL = "full"
KINDS = (KIND_PUSH, KIND_PULL, KIND_FULL)

OrchestratorFactory = Callable[[Session], SyncOrchestrator]


def _serialize(results: Dict) -> Dict[str, Any]:
    return {
        key: _serialize(value) if isinstance(value, dict) else value.to_dict()
        for key, value in results.items()
    }


class SyncScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        orchestrator_factory: OrchestratorFactory,
        settings: Optional[Settings] = None
    ):
        self.session_factory = session_factory
        self.orchestrator_factory = orchestrator_factory
        self.settings = settings or get_settings()

        self.executor = ThreadPoolExecutor(
            max_workers=max(self.settings.sync_worker_threads, 1),
            thread_name_prefix="roomsync-sync",
        )
        self._lock = threading.Lock()
        self._issued = {kind: 0 for kind in KINDS}
        self._started = {kind: 0 for kind in KINDS}
        self._jobs: Optional[AsyncIOScheduler] = None

    # ==================
    # Jobs
    # ==================

    def trigger(self, kind: str, **options) -> Future:
        """
        Queue a sync run. Options are passed to the orchestrator:
        channel_name, start, end (push/full) and since (pull).
        The future resolves to a summary dict.
        """
        if kind not in KINDS:
            raise ValueError(f"Unknown sync kind {kind}")

        with self._lock:
            self._issued[kind] += 1
            generation = self._issued[kind]

        logger.debug(f"Queued {kind} sync generation {generation}")
        return self.executor.submit(self._run, kind, generation, options)

    def _claim(self, kind: str, generation: int) -> bool:
        with self._lock:
            if self._started[kind] > generation:
                return False
            self._started[kind] = generation
            return True

    def _run(self, kind: str, generation: int, options: Dict[str, Any]) -> Dict[str, Any]:
        with log_context(request_id=f"{kind}-{generation}"):
            return self._execute(kind, generation, options)

    def _execute(self, kind: str, generation: int, options: Dict[str, Any]) -> Dict[str, Any]:
        if not self._claim(kind, generation):
            logger.info(f"Skipping {kind} sync generation {generation}: superseded by a newer run")
            return {"kind": kind, "generation": generation, "status": "superseded", "results": {}}

        db = self.session_factory()
        try:
            orchestrator = self.orchestrator_factory(db)
            channel_name = options.get("channel_name")

            if kind == KIND_PULL:
                results = orchestrator.pull_reservations(channel_name, since=options.get("since"))
            elif kind == KIND_PUSH:
                start, end = options.get("start"), options.get("end")
                results = {
                    "availability": orchestrator.push_availability(channel_name, start, end),
                    "rates": orchestrator.push_rates(channel_name, start, end),
                }
                if options.get("prune"):
                    orchestrator.sync_log.prune(self.settings.sync_log_retention_days)
            else:
                results = orchestrator.full_sync(channel_name, options.get("start"), options.get("end"))

            return {"kind": kind, "generation": generation, "status": "completed", "results": _serialize(results)}
        except Exception as e:
            db.rollback()
            logger.exception(f"{kind} sync generation {generation} crashed: {e}")
            return {"kind": kind, "generation": generation, "status": "error", "error": str(e), "results": {}}
        finally:
            db.close()

    def _run_booking_event(self, event_type: str, payload: Any) -> Dict[str, Any]:
        db = self.session_factory()
        try:
            with log_context(request_id=f"{event_type}-{uuid.uuid4().hex[:8]}"):
                results = self.orchestrator_factory(db).on_booking_event(event_type, payload)
            return _serialize(results)
        except Exception as e:
            db.rollback()
            logger.exception(f"Real-time push for {event_type} failed: {e}")
            return {}
        finally:
            db.close()

    def on_booking_event(self, event_type: str, payload: Any) -> Future:
        return self.executor.submit(self._run_booking_event, event_type, payload)

    def attach(self, bus: EventBus) -> None:
        """Route booking events to a worker thread with its own session"""
        for event_type in BOOKING_EVENTS:
            bus.subscribe(event_type, self.on_booking_event)

    # ==================
    # Periodic runs
    # ==================

    @property
    def running(self) -> bool:
        return self._jobs is not None and self._jobs.running

    async def _scheduled_run(self, kind: str, **options) -> None:
        summary = await asyncio.wrap_future(self.trigger(kind, **options))
        if summary.get("status") == "error":
            logger.error(f"Scheduled {kind} sync failed: {summary.get('error')}")

    def start(self) -> None:
        """Schedule the pull and push runs; must be called from a running event loop"""
        if self.running:
            logger.warning("Sync scheduler is already running")
            return

        now = datetime.now(timezone.utc)
        self._jobs = AsyncIOScheduler(timezone="UTC")
        self._jobs.add_job(
            self._scheduled_run,
            IntervalTrigger(seconds=self.settings.pull_interval_seconds),
            args=[KIND_PULL],
            id="sync_pull",
            name="Pull reservations",
            next_run_time=now,
            coalesce=True,
            replace_existing=True
        )
        self._jobs.add_job(
            self._scheduled_run,
            IntervalTrigger(seconds=self.settings.push_interval_seconds),
            args=[KIND_PUSH],
            kwargs={"prune": True},
            id="sync_push",
            name="Push availability and rates",
            next_run_time=now,
            coalesce=True,
            replace_existing=True
        )
        self._jobs.start()

        logger.info(
            f"Sync scheduler started (pull every {self.settings.pull_interval_seconds}s, "
            f"push every {self.settings.push_interval_seconds}s, "
            f"{self.settings.sync_worker_threads} worker thread(s))"
        )

    def jobs(self) -> List[Dict[str, Any]]:
        if not self.running:
            return []
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in self._jobs.get_jobs()
        ]

    async def shutdown(self, wait: bool = True) -> None:
        if self._jobs is not None:
            self._jobs.shutdown(wait=False)
            self._jobs = None
        # Started jobs finish; queued ones are dropped
        self.executor.shutdown(wait=wait, cancel_futures=True)
        logger.info("Sync scheduler stopped")
