#!/usr/bin/env python3
"""Scheduler runner script.

Enqueues the contest finalizer and the daily/weekly/monthly maintenance jobs
on their cadence. Workers pick them up with `rq worker`.

Usage:
    python scripts/run_scheduler.py

Runs until interrupted (Ctrl+C).
"""

import sys
from pathlib import Path

# Add the backend directory to the Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import structlog

from arena.logging_setup import configure_logging
from arena.jobs.scheduler import run_forever

configure_logging()
log = structlog.get_logger()


def main():
    try:
        run_forever()
    except KeyboardInterrupt:
        log.info("scheduler_stopped")


if __name__ == "__main__":
    main()
