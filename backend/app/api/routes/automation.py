"""
Trigger endpoints for an external scheduler (cron). Both are safe to call more than once
in the same due window: the lifecycle checks labels, the tick relies on the dedup ledger.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.errors import AutomationError, automation_error_to_http
from app.core.security import require_trigger_auth
from app.db.session import get_db
from app.services.period_lifecycle import run_period_lifecycle
from app.services.reminders.tick import run_reminder_tick

router = APIRouter(dependencies=[Depends(require_trigger_auth)])
logger = logging.getLogger(__name__)


@router.get("/cron")
def period_lifecycle_trigger(db: Session = Depends(get_db)) -> dict[str, Any]:
    """Create the next quarter's period (and its slots) when it is inside its lead window."""
    try:
        return run_period_lifecycle(db)
    except AutomationError as e:
        logger.error("Lifecycle trigger failed: %s", e)
        raise automation_error_to_http(e) from e


@router.get("/tick")
def reminder_tick(
    db: Session = Depends(get_db),
    dry_run: bool = Query(False, description="Report due kinds and recipients without sending or writing the ledger"),
    debug: bool = Query(False, description="Include per-period evaluation details"),
) -> dict[str, Any]:
    """Evaluate due reminders for every period and send them. Always ok; failures are in errors[]."""
    return run_reminder_tick(db, dry_run=dry_run, debug=debug)
