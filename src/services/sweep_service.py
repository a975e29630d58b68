"""
Scheduled sweeps.

Each sweep is a batch function over the current ticket set. None keeps state
between runs beyond what it writes on the tickets or the daily metric, so a
rerun (or a resumed partial run) converges on the same result.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from models.metrics import UNASSIGNED_BUCKET, AgentDayMetrics, DailyMetric, SweepReport
from models.ticket import ACTIVE_STATUSES, SlaStatus, Ticket, TicketQuery, TicketStatus
from repositories.base import DailyMetricStore, TicketStore
from services.metrics_service import response_time_minutes
from services.notification_service import NotificationService
from services.sla_policy import SlaPolicy
from services.ticket_service import TicketService
from utils.clock import Clock
from utils.error_handling import ConcurrentUpdateConflictError, InvalidTransitionError
from utils.identifiers import date_key
from utils.logging_config import get_logger

logger = get_logger(__name__)

AUTO_CLOSE = "auto_close"
SLA_WARNING = "sla_warning"
CUSTOMER_REMINDER = "customer_reminder"
DAILY_ROLLUP = "daily_rollup"


class SweepService:
    """Auto-close, SLA warning, customer reminder and daily rollup jobs."""

    def __init__(
        self,
        tickets: TicketService,
        store: TicketStore,
        daily_metrics: DailyMetricStore,
        notifications: NotificationService,
        sla_policy: SlaPolicy,
        clock: Clock,
        auto_close_after: timedelta = timedelta(days=7),
        reminder_after: timedelta = timedelta(hours=24),
        reminder_throttle: timedelta = timedelta(days=2),
        metrics_timezone: str = "UTC",
        max_retries: int = 3,
    ):
        self.tickets = tickets
        self.store = store
        self.daily_metrics = daily_metrics
        self.notifications = notifications
        self.sla_policy = sla_policy
        self.clock = clock
        self.auto_close_after = auto_close_after
        self.reminder_after = reminder_after
        self.reminder_throttle = reminder_throttle
        self.timezone = ZoneInfo(metrics_timezone)
        self.max_retries = max_retries

    def _report(self, job: str) -> SweepReport:
        return SweepReport(job=job, started_at=self.clock.now())

    def _finish(self, report: SweepReport) -> SweepReport:
        report.finished_at = self.clock.now()
        logger.info("Sweep finished", extra=report.model_dump(mode="json"))
        return report

    # ------------------------------------------------------------- auto close

    def auto_close_inactive(self) -> SweepReport:
        """Close non-closed tickets untouched for longer than the inactivity threshold."""
        report = self._report(AUTO_CLOSE)
        now = self.clock.now()
        stale = self.store.query(
            TicketQuery(statuses=list(ACTIVE_STATUSES), updated_before=now - self.auto_close_after)
        )
        closed: List[Ticket] = []
        for ticket in stale:
            report.examined += 1
            try:
                closed.append(
                    self.tickets.close_ticket(ticket.id, auto_closed=True, expected_version=ticket.version)
                )
                report.processed += 1
            except (ConcurrentUpdateConflictError, InvalidTransitionError) as exc:
                # Touched or closed since the scan; the next run re-evaluates it.
                report.skipped += 1
                logger.info(
                    "Auto-close skipped",
                    extra={"ticket_id": ticket.id, "reason": exc.error_code},
                )

        if closed:
            self.notifications.auto_close_summary(
                closed, threshold_days=self.auto_close_after.total_seconds() / 86400
            )
        return self._finish(report)

    # ------------------------------------------------------------ SLA warning

    def sla_warnings(self) -> SweepReport:
        """Notify about unanswered tickets whose deadline falls inside the warning window."""
        report = self._report(SLA_WARNING)
        now = self.clock.now()
        candidates = self.store.query(
            TicketQuery(
                statuses=[TicketStatus.NEW, TicketStatus.IN_PROGRESS],
                sla_deadline_after=now,
                sla_deadline_before=now + self.sla_policy.warning_window,
                newest_first=False,
            )
        )
        at_risk = []
        for ticket in candidates:
            report.examined += 1
            if self.sla_policy.evaluate_ticket(ticket, now) != SlaStatus.WARNING:
                # Already answered within the deadline.
                report.skipped += 1
                continue
            at_risk.append(ticket)
            if ticket.agent_email and not self.notifications.sla_warning(ticket):
                report.failed += 1
            report.processed += 1

        if at_risk:
            self.notifications.sla_digest(at_risk)
        return self._finish(report)

    # ------------------------------------------------------ customer reminder

    def customer_reminders(self) -> SweepReport:
        """Nudge customers on tickets waiting for their reply, at most once per throttle period."""
        report = self._report(CUSTOMER_REMINDER)
        now = self.clock.now()
        waiting = self.store.query(
            TicketQuery(statuses=[TicketStatus.WAITING], updated_before=now - self.reminder_after)
        )
        for ticket in waiting:
            report.examined += 1
            if ticket.last_reminder_at and now - ticket.last_reminder_at < self.reminder_throttle:
                report.skipped += 1
                continue
            if not self.notifications.customer_reminder(ticket):
                report.failed += 1
                continue
            report.processed += 1
            self._record_reminder(ticket, now)
        return self._finish(report)

    def _record_reminder(self, ticket: Ticket, now: datetime) -> None:
        """Store the throttle marker for a sent reminder, re-reading on version conflicts."""
        for _ in range(self.max_retries):
            try:
                # Marker only; updated_at keeps measuring inactivity.
                self.store.update(ticket.id, {"last_reminder_at": now}, expected_version=ticket.version)
                return
            except ConcurrentUpdateConflictError:
                current = self.store.get(ticket.id)
                if current is None or current.status != TicketStatus.WAITING:
                    # No longer waiting, so no further reminder is due.
                    logger.info("Ticket left waiting during reminder", extra={"ticket_id": ticket.id})
                    return
                ticket = current
        logger.warning(
            "Reminder marker not stored",
            extra={"ticket_id": ticket.id, "attempts": self.max_retries},
        )

    # ----------------------------------------------------------- daily rollup

    def day_window(self, day: date) -> tuple:
        start = datetime.combine(day, time.min, tzinfo=self.timezone)
        return start, start + timedelta(days=1)

    def daily_rollup(self, day: Optional[date] = None) -> DailyMetric:
        """
        Compute and merge the DailyMetric for `day` (today in the metrics timezone by default).

        Opened and closed counts are bucketed by agent (or "unassigned");
        SLA compliance is the share of currently open tickets not past their
        deadline, as a percentage.
        """
        now = self.clock.now()
        day = day or now.astimezone(self.timezone).date()
        start, end = self.day_window(day)

        buckets: Dict[str, AgentDayMetrics] = defaultdict(AgentDayMetrics)

        opened = self.store.query(TicketQuery(created_from=start, created_before=end))
        for ticket in opened:
            buckets[ticket.agent_id or UNASSIGNED_BUCKET].tickets_opened += 1

        resolved = self.store.query(
            TicketQuery(statuses=[TicketStatus.CLOSED], resolved_from=start, resolved_before=end)
        )
        for ticket in resolved:
            bucket = buckets[ticket.agent_id or UNASSIGNED_BUCKET]
            bucket.tickets_closed += 1
            minutes = response_time_minutes(ticket)
            if minutes > 0:
                bucket.total_response_minutes += minutes
                bucket.response_count += 1

        open_tickets = self.store.query(TicketQuery(statuses=list(ACTIVE_STATUSES)))
        within_sla = sum(
            1 for t in open_tickets if t.sla_deadline is None or t.sla_deadline > now
        )
        compliance = 100.0 if not open_tickets else round(100.0 * within_sla / len(open_tickets), 2)

        metric = DailyMetric(
            date=date_key(day),
            tickets_opened=len(opened),
            tickets_closed=len(resolved),
            sla_compliance=compliance,
            agent_metrics=dict(buckets),
            computed_at=now,
        )
        self.daily_metrics.upsert(metric)
        logger.info(
            "Daily rollup written",
            extra={
                "date": metric.date,
                "tickets_opened": metric.tickets_opened,
                "tickets_closed": metric.tickets_closed,
                "sla_compliance": metric.sla_compliance,
            },
        )
        return metric
