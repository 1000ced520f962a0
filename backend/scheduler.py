"""
Shared APScheduler instance.

The FastAPI lifespan starts and stops it; services add their polling jobs
to it so every background job shows up in ``/admin/scheduler/status``.
"""

from apscheduler.schedulers.background import BackgroundScheduler

scheduler = BackgroundScheduler()


def ensure_started() -> BackgroundScheduler:
    """Start the shared scheduler if nothing has started it yet."""
    if not scheduler.running:
        scheduler.start()
    return scheduler
