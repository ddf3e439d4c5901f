"""
Rate-limited dispatcher: one send at a time, a minimum gap between network calls,
bounded linear backoff on throttling, outcomes written to the dedup ledger.

Per message:
  already in ledger      -> skipped (no sleep, no network call)
  claim ALREADY_CLAIMED  -> skipped
  claim ERROR            -> ledger error, not sent
  SUCCESS                -> row marked sent
  FAILURE                -> row marked failed, batch continues
  THROTTLED x max        -> claim released (a later tick may retry), reported failed
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from app.core.automation_config import (
    EMAIL_MAX_ATTEMPTS,
    EMAIL_MIN_GAP_MS,
    EMAIL_RETRY_BACKOFF_MS,
    AutomationConfig,
)
from app.core.errors import LedgerWriteError
from app.services.email.transport import EmailTransport, SendOutcome
from app.services.reminders.ledger import STATUS_FAILED, STATUS_SENT, ClaimResult, DedupLedger
from app.services.reminders.recipients import Recipient

logger = logging.getLogger(__name__)


class RateLimiter:
    """Keeps at least min_gap_seconds between consecutive acquire() calls. RateLimiter(0) never sleeps."""

    def __init__(
        self,
        min_gap_seconds: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_gap_seconds = max(0.0, min_gap_seconds)
        self._sleep = sleep
        self._clock = clock
        self._last: float | None = None

    @classmethod
    def from_config(cls, cfg: AutomationConfig) -> "RateLimiter":
        return cls(cfg.email_min_gap_ms / 1000.0)

    def acquire(self) -> None:
        if self.min_gap_seconds and self._last is not None:
            wait = self.min_gap_seconds - (self._clock() - self._last)
            if wait > 0:
                self._sleep(wait)
        self._last = self._clock()


@dataclass
class OutboundMessage:
    recipient: Recipient
    subject: str
    html: str
    text: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class DispatchReport:
    sent: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    would_send: list[str] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)


def error_entry(
    type_: str,
    period_id: int | None,
    kind: Any = None,
    target: str | None = None,
    detail: str = "",
) -> dict[str, Any]:
    """One entry of the tick's errors list."""
    return {
        "type": type_,
        "period_id": period_id,
        "kind": getattr(kind, "value", kind),
        "target": target,
        "detail": detail,
    }


class Dispatcher:
    def __init__(
        self,
        transport: EmailTransport | None,
        ledger: DedupLedger,
        rate_limiter: RateLimiter | None = None,
        max_attempts: int = EMAIL_MAX_ATTEMPTS,
        backoff_seconds: float = EMAIL_RETRY_BACKOFF_MS / 1000.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.ledger = ledger
        self.rate_limiter = rate_limiter or RateLimiter(EMAIL_MIN_GAP_MS / 1000.0)
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def _send_with_retry(self, msg: OutboundMessage) -> tuple[SendOutcome, int]:
        outcome = SendOutcome.FAILURE
        attempt = 0
        for attempt in range(1, self.max_attempts + 1):
            self.rate_limiter.acquire()
            try:
                outcome = self.transport.send(msg.recipient.email, msg.subject, msg.html, msg.text)
            except Exception:
                logger.exception("Transport raised sending to %s; treating as failed", msg.recipient.email)
                outcome = SendOutcome.FAILURE
            if outcome != SendOutcome.THROTTLED:
                break
            if attempt < self.max_attempts:
                logger.warning(
                    "Throttled sending to %s (attempt %s/%s); backing off", msg.recipient.email, attempt, self.max_attempts
                )
                self._sleep(attempt * self.backoff_seconds)
        return outcome, attempt

    def dispatch(
        self,
        period_id: int,
        kind: Any,
        window_key: str,
        messages: list[OutboundMessage],
        dry_run: bool = False,
    ) -> DispatchReport:
        """Send a batch for one (period, kind, window), in the given order. Dry run touches neither network nor ledger."""
        report = DispatchReport()
        kind_value = getattr(kind, "value", kind)
        for msg in messages:
            target = msg.recipient.email
            if dry_run:
                report.would_send.append(target)
                continue
            if self.ledger.already_sent(period_id, kind, window_key, target):
                report.skipped.append(target)
                continue
            claim = self.ledger.claim(period_id, kind, window_key, target, meta=msg.meta)
            if claim.result == ClaimResult.ALREADY_CLAIMED:
                report.skipped.append(target)
                continue
            if claim.result == ClaimResult.ERROR:
                report.errors.append(error_entry("ledger", period_id, kind, target, claim.error or "claim failed"))
                continue

            outcome, attempts = self._send_with_retry(msg)
            try:
                if outcome == SendOutcome.SUCCESS:
                    self.ledger.mark_outcome(claim.event_id, STATUS_SENT, {"attempts": attempts})
                    report.sent.append(target)
                    logger.info("Sent %s reminder (period %s, %s) to %s", kind_value, period_id, window_key, target)
                elif outcome == SendOutcome.THROTTLED:
                    self.ledger.release(claim.event_id)
                    report.failed.append(target)
                    report.errors.append(
                        error_entry("transport", period_id, kind, target, f"throttled after {attempts} attempts")
                    )
                    logger.warning("Gave up on %s after %s throttled attempts; claim released", target, attempts)
                else:
                    self.ledger.mark_outcome(claim.event_id, STATUS_FAILED, {"attempts": attempts})
                    report.failed.append(target)
                    report.errors.append(error_entry("transport", period_id, kind, target, "send failed"))
            except LedgerWriteError as e:
                if outcome == SendOutcome.SUCCESS:
                    report.sent.append(target)
                else:
                    report.failed.append(target)
                report.errors.append(error_entry("ledger", period_id, kind, target, str(e)))
                logger.error("Ledger outcome write failed for %s: %s", target, e)
        return report
