from __future__ import annotations
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

import structlog
from redis import Redis
from rq import Queue

from arena.config import settings
from arena.jobs.scheduled import (
    finalize_contests_job, streak_freezes_job, weekly_reset_job, monthly_reset_job,
    weekly_free_rotation_job,
)
from arena.services.utc_days import utc_now, utc_day, iso_week_label

log = structlog.get_logger()


@dataclass
class Cadence:
    """
    Decides which jobs are due at `now`. Calendar jobs run once per period key
    (UTC day, ISO week, month); the finalizer runs on a fixed interval.
    """
    finalizer_interval_seconds: int
    last_finalizer_at: datetime | None = None
    done: dict[str, str] = field(default_factory=dict)

    def due(self, now: datetime) -> list[str]:
        jobs: list[str] = []
        if self.last_finalizer_at is None or (now - self.last_finalizer_at).total_seconds() >= self.finalizer_interval_seconds:
            jobs.append("finalize_contests")
            self.last_finalizer_at = now

        day = utc_day(now)
        periods = {"streak_freezes": day.isoformat()}
        if day.weekday() == 0:
            week = iso_week_label(day)
            periods["weekly_reset"] = week
            periods["weekly_free_rotation"] = week
        if day.day == 1:
            periods["monthly_reset"] = f"{day.year}-{day.month:02d}"

        for name, key in periods.items():
            if self.done.get(name) != key:
                self.done[name] = key
                jobs.append(name)
        return jobs


JOBS: dict[str, Callable] = {
    "finalize_contests": finalize_contests_job,
    "streak_freezes": streak_freezes_job,
    "weekly_reset": weekly_reset_job,
    "monthly_reset": monthly_reset_job,
    "weekly_free_rotation": weekly_free_rotation_job,
}


def run_forever(queue: Queue | None = None, tick_seconds: int | None = None) -> None:
    queue = queue or Queue(settings.job_queue, connection=Redis.from_url(settings.redis_url))
    tick = tick_seconds or settings.scheduler_tick_seconds
    cadence = Cadence(settings.finalizer_interval_seconds)
    log.info("scheduler_started", queue=queue.name, tick_seconds=tick)
    while True:
        for name in cadence.due(utc_now()):
            job = queue.enqueue(JOBS[name])
            log.info("job_enqueued", job=name, job_id=job.id)
        time.sleep(tick)
