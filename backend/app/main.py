"""
FastAPI app entrypoint.

Planning automation: period lifecycle, reminder tick, admin settings.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from app.api.routes import admin, automation
from app.config import settings
from app.core.constants import (
    LIFECYCLE_CRON_HOUR,
    PERIOD_LIFECYCLE_JOB_ID,
    REMINDER_TICK_INTERVAL_MINUTES,
    REMINDER_TICK_JOB_ID,
)
from app.scheduler.automation_jobs import run_period_lifecycle_job, run_reminder_tick_job

logger = logging.getLogger(__name__)

_scheduler = BackgroundScheduler(timezone="UTC")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.scheduler_enabled:
        _scheduler.add_job(
            run_period_lifecycle_job,
            "cron",
            hour=LIFECYCLE_CRON_HOUR,
            minute=0,
            id=PERIOD_LIFECYCLE_JOB_ID,
            replace_existing=True,
        )
        _scheduler.add_job(
            run_reminder_tick_job,
            "interval",
            minutes=REMINDER_TICK_INTERVAL_MINUTES,
            id=REMINDER_TICK_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        _scheduler.start()
        app.state.scheduler = _scheduler
        logger.info(
            "Scheduler started: lifecycle daily at %02d:00 UTC, reminder tick every %s min",
            LIFECYCLE_CRON_HOUR,
            REMINDER_TICK_INTERVAL_MINUTES,
        )
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false); expecting an external cron on /automation/*")
    yield
    if _scheduler.running:
        _scheduler.shutdown(wait=False)


app = FastAPI(title="Planning Automation", version="0.1.0", lifespan=lifespan)

# CORS: dev origins + optional CORS_ORIGINS (comma-separated) for the production frontend
_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.cors_origins:
    _cors_origins.extend(o.strip() for o in settings.cors_origins.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(automation.router, prefix="/automation", tags=["automation"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])


@app.get("/", include_in_schema=False)
def root():
    return {"message": "Planning automation API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
