"""
SLA Escalation Dispatcher.

WHAT: Runs the periodic escalation scan and the ticket status-change hook.

WHY: The scan is the only writer of escalation records and the status hook
is the only thing that resolves them. Both live here so they share the
same clock, policy and per-ticket serialization:
1. Open tickets past their response budget get a WARNING (chat alert)
2. Open tickets past the escalation threshold get ESCALATED (admin alert)
3. Replaying a scan never duplicates a stage of the current breach cycle
4. A status change closes the breach cycle and restarts the clock

HOW: Each scan lists eligible tickets, then handles every ticket in its own
session and transaction:
1. Re-fetch the ticket FOR UPDATE under an in-process per-ticket lock
2. Run the pure evaluator against the unresolved levels
3. Persist records and timer fields, then commit
4. Deliver queued notifications with bounded retry
Failures are isolated per ticket. The whole pass has a time budget.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.exceptions import SLAScanTimeoutError, TicketNotFoundError
from app.dao.ticket import TicketDAO
from app.dao.ticket_escalation import TicketEscalationDAO
from app.dao.user import UserDAO
from app.db.session import AsyncSessionLocal
from app.models.ticket import Ticket, TicketStatus
from app.models.ticket_escalation import EscalationLevel
from app.services.escalation_evaluator import (
    EscalationAction,
    EscalationMetrics,
    TicketSnapshot,
    evaluate,
)
from app.services.notification_service import (
    DeliveryResult,
    EscalationNotifier,
    TicketNotice,
)
from app.services.sla_policy import SLAPolicy


logger = logging.getLogger(__name__)


Clock = Callable[[], datetime]


@dataclass
class ScanResult:
    """Counters for one escalation scan."""

    checked: int = 0
    warnings_raised: int = 0
    escalations_raised: int = 0
    errors: int = 0
    notifications_failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class TicketOutcome:
    """What a single ticket's transaction raised, for post-commit delivery."""

    ticket_id: int
    warning_raised: bool = False
    escalation_raised: bool = False
    notice: Optional[TicketNotice] = None
    metrics: Optional[EscalationMetrics] = None

    @property
    def has_actions(self) -> bool:
        return self.warning_raised or self.escalation_raised


class _TicketLocks:
    """
    Per-ticket asyncio locks.

    WHY: Serializes the scan and the status hook for the same ticket within
    one process. Locks are reference counted and dropped when unused.
    """

    def __init__(self) -> None:
        self._entries: Dict[int, List[Any]] = {}

    @asynccontextmanager
    async def hold(self, ticket_id: int) -> AsyncIterator[None]:
        entry = self._entries.get(ticket_id)
        if entry is None:
            entry = self._entries[ticket_id] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                self._entries.pop(ticket_id, None)

    def __len__(self) -> int:
        return len(self._entries)


class EscalationDispatcher:
    """
    Applies SLA escalation decisions to tickets.

    WHAT: Scans open tickets, raises staged escalations and delivers alerts.

    WHY: Escalation state and alert delivery have different failure modes.
    State is committed per ticket first. Alerts are sent afterwards and
    their failures are retried, logged and never roll state back.

    Example:
        dispatcher = EscalationDispatcher()
        result = await dispatcher.run_escalation_scan()
        logger.info(result.to_dict())
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        policy: Optional[SLAPolicy] = None,
        notifier: Optional[EscalationNotifier] = None,
        clock: Optional[Clock] = None,
        max_attempts: Optional[int] = None,
        retry_backoff_seconds: Optional[float] = None,
        scan_timeout_seconds: Optional[float] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            session_factory: Factory for per-ticket sessions
            policy: SLA policy table (defaults to settings)
            notifier: Notification sink (defaults to Telegram + admin inbox)
            clock: Returns the current naive-UTC time
            max_attempts: Delivery attempts per notification
            retry_backoff_seconds: Linear backoff unit between attempts
            scan_timeout_seconds: Time budget for one scan
        """
        self._session_factory = session_factory or AsyncSessionLocal
        self.policy = policy or SLAPolicy.from_settings()
        self.notifier = notifier or EscalationNotifier(session_factory=self._session_factory)
        self._clock = clock or datetime.utcnow
        self.max_attempts = max(
            1, max_attempts if max_attempts is not None else settings.NOTIFICATION_MAX_ATTEMPTS
        )
        self.retry_backoff_seconds = (
            retry_backoff_seconds
            if retry_backoff_seconds is not None
            else settings.NOTIFICATION_RETRY_BACKOFF_SECONDS
        )
        self.scan_timeout_seconds = (
            scan_timeout_seconds
            if scan_timeout_seconds is not None
            else settings.SLA_SCAN_TIMEOUT_SECONDS
        )
        self._locks = _TicketLocks()

    def ticket_lock(self, ticket_id: int):
        """
        Per-ticket lock shared by the scan and status changes.

        WHY: A status change that runs in the caller's session must hold
        this until it commits, otherwise a scan can insert a record between
        its read of the ticket and the status commit.

        Example:
            async with dispatcher.ticket_lock(ticket_id):
                ...  # read, update, on_ticket_status_changed(session=...)
                await session.commit()
        """
        return self._locks.hold(ticket_id)

    # =========================================================================
    # Escalation scan
    # =========================================================================

    async def run_escalation_scan(self) -> ScanResult:
        """
        Main job function: one escalation pass over all eligible tickets.

        WHAT: Evaluates every OPEN, non-escalated ticket and applies the
        resulting actions.

        WHY: Runs every SLA_CHECK_INTERVAL_MINUTES. Each pass is idempotent,
        so a replayed or overlapping pass raises nothing new.

        Returns:
            ScanResult with checked, raised and error counts

        Raises:
            SLAScanTimeoutError: If the pass exceeds its time budget.
                Tickets committed before the timeout keep their state.
        """
        logger.info("Starting SLA escalation scan")
        start_time = datetime.utcnow()
        result = ScanResult()

        try:
            await asyncio.wait_for(self._scan(result), timeout=self.scan_timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error(
                f"SLA escalation scan timed out after {self.scan_timeout_seconds}s "
                f"({result.checked} tickets checked)"
            )
            raise SLAScanTimeoutError(
                timeout_seconds=self.scan_timeout_seconds,
                **result.to_dict(),
            ) from e

        elapsed = (datetime.utcnow() - start_time).total_seconds()
        logger.info(
            f"SLA escalation scan completed in {elapsed:.2f}s. "
            f"Checked: {result.checked}, "
            f"Warnings: {result.warnings_raised}, "
            f"Escalations: {result.escalations_raised}, "
            f"Errors: {result.errors}"
        )
        return result

    async def _scan(self, result: ScanResult) -> None:
        """Process eligible tickets one by one, updating result in place."""
        # Listing failures are infrastructure errors and propagate
        async with self._session_factory() as session:
            tickets = await TicketDAO(session).list_open_non_escalated()
            ticket_ids = [ticket.id for ticket in tickets]

        logger.info(f"Checking SLA escalation for {len(ticket_ids)} open tickets")

        for ticket_id in ticket_ids:
            result.checked += 1
            try:
                outcome = await self._process_ticket(ticket_id)
            except Exception as e:
                logger.error(f"Error checking SLA escalation for ticket {ticket_id}: {e}")
                result.errors += 1
                continue

            if outcome.warning_raised:
                result.warnings_raised += 1
            if outcome.escalation_raised:
                result.escalations_raised += 1

            if outcome.has_actions:
                result.notifications_failed += await self._deliver_notifications(outcome)

    async def _process_ticket(self, ticket_id: int) -> TicketOutcome:
        """
        Evaluate one ticket and persist its escalation records.

        WHAT: Read-decide-write for a single ticket in its own transaction.

        WHY: A failure here must not affect other tickets, and a committed
        ticket must survive a later timeout of the pass.

        Returns:
            TicketOutcome describing what was raised (possibly nothing)
        """
        outcome = TicketOutcome(ticket_id=ticket_id)

        async with self._locks.hold(ticket_id):
            async with self._session_factory() as session:
                try:
                    ticket_dao = TicketDAO(session)
                    escalation_dao = TicketEscalationDAO(session)

                    ticket = await ticket_dao.get_by_id(ticket_id, for_update=True)
                    if ticket is None:
                        logger.info(f"Ticket {ticket_id} disappeared before evaluation, skipping")
                        return outcome

                    now = self._clock()
                    unresolved_levels = await escalation_dao.get_unresolved_levels(ticket_id)
                    decision = evaluate(
                        TicketSnapshot.from_ticket(ticket),
                        unresolved_levels,
                        self.policy,
                        now,
                    )
                    if not decision.has_actions:
                        return outcome

                    outcome.metrics = decision.metrics
                    for action in decision.actions:
                        if action == EscalationAction.RAISE_WARNING:
                            outcome.warning_raised = await self._raise_warning(
                                ticket_dao, escalation_dao, ticket, now, decision.metrics
                            )
                        elif action == EscalationAction.RAISE_ESCALATION:
                            outcome.escalation_raised = await self._raise_escalation(
                                ticket_dao, escalation_dao, ticket, now, decision.metrics
                            )

                    if outcome.has_actions:
                        outcome.notice = await self._build_notice(session, ticket)

                    await session.commit()

                except Exception:
                    await session.rollback()
                    raise

        return outcome

    async def _raise_warning(
        self,
        ticket_dao: TicketDAO,
        escalation_dao: TicketEscalationDAO,
        ticket: Ticket,
        now: datetime,
        metrics: EscalationMetrics,
    ) -> bool:
        """Create the WARNING record. Returns False if a concurrent scan won."""
        record = await escalation_dao.create_if_absent(
            ticket_id=ticket.id,
            level=EscalationLevel.WARNING,
            escalated_at=now,
        )
        if record is None:
            return False

        if ticket.first_escalated_at is None:
            await ticket_dao.update_fields(ticket.id, first_escalated_at=now)

        logger.info(
            f"SLA warning raised for ticket {ticket.display_number}: "
            f"{metrics.minutes_elapsed}m elapsed, budget {metrics.response_budget_minutes}m"
        )
        return True

    async def _raise_escalation(
        self,
        ticket_dao: TicketDAO,
        escalation_dao: TicketEscalationDAO,
        ticket: Ticket,
        now: datetime,
        metrics: EscalationMetrics,
    ) -> bool:
        """Create the ESCALATED record. Returns False if a concurrent scan won."""
        record = await escalation_dao.create_if_absent(
            ticket_id=ticket.id,
            level=EscalationLevel.ESCALATED,
            escalated_at=now,
        )
        if record is None:
            return False

        await ticket_dao.update_fields(ticket.id, is_escalated=True)

        logger.warning(
            f"Ticket {ticket.display_number} escalated to admin: "
            f"{metrics.minutes_elapsed}m elapsed, threshold {metrics.escalation_threshold_minutes}m"
        )
        return True

    async def _build_notice(self, session: AsyncSession, ticket: Ticket) -> TicketNotice:
        """Snapshot the ticket and its people for post-commit delivery."""
        user_dao = UserDAO(session)
        creator = await user_dao.get_by_id(ticket.user_id)
        assignee = None
        if ticket.assigned_to_user_id:
            assignee = await user_dao.get_by_id(ticket.assigned_to_user_id)

        return TicketNotice(
            ticket_id=ticket.id,
            ticket_number=ticket.display_number,
            subject=ticket.subject,
            priority=ticket.priority.value,
            created_by=creator.name if creator else None,
            assigned_to=assignee.name if assignee else None,
        )

    # =========================================================================
    # Notification delivery
    # =========================================================================

    async def _deliver_notifications(self, outcome: TicketOutcome) -> int:
        """
        Send the alerts queued by one ticket's transaction.

        Returns:
            Number of deliveries that finally failed
        """
        notice = outcome.notice
        metrics = outcome.metrics
        deliveries = []

        if outcome.warning_raised:
            deliveries.append(
                ("SLA warning", lambda: self.notifier.send_warning(notice, metrics))
            )
        if outcome.escalation_raised:
            deliveries.append(
                ("SLA escalation", lambda: self.notifier.send_escalation(notice, metrics))
            )
            deliveries.append(
                ("admin notification", lambda: self.notifier.notify_admins(notice, metrics))
            )

        failed = 0
        for name, send in deliveries:
            result = await self._deliver_with_retry(name, notice.ticket_number, send)
            if not result.ok:
                failed += 1
        return failed

    async def _deliver_with_retry(
        self,
        name: str,
        ticket_number: str,
        send: Callable[[], Awaitable[DeliveryResult]],
    ) -> DeliveryResult:
        """
        Call a sink until it succeeds, fails permanently or runs out of attempts.

        WHY: Chat APIs fail transiently (timeouts, rate limits). Retries
        are bounded so one flaky channel cannot stall the scan.

        HOW: Linear backoff of retry_backoff_seconds * attempt between
        attempts. Exceptions from the sink are treated as retryable failures.
        """
        result = DeliveryResult.failed("not attempted")

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await send()
            except Exception as e:
                result = DeliveryResult.failed(str(e), retryable=True)

            if result.ok:
                return result

            if not result.retryable or attempt >= self.max_attempts:
                logger.error(
                    f"Giving up on {name} for ticket {ticket_number} "
                    f"after {attempt} attempt(s): {result.error}"
                )
                return result

            logger.warning(
                f"{name} for ticket {ticket_number} failed "
                f"(attempt {attempt}/{self.max_attempts}): {result.error}, retrying"
            )
            await asyncio.sleep(self.retry_backoff_seconds * attempt)

        return result

    # =========================================================================
    # Status transition hook
    # =========================================================================

    async def on_ticket_status_changed(
        self,
        ticket_id: int,
        old_status: TicketStatus,
        new_status: TicketStatus,
        session: Optional[AsyncSession] = None,
    ) -> None:
        """
        React to a ticket status change.

        WHAT: Closes the current breach cycle and restarts the response clock.
        - Leaving OPEN: resolve all unresolved records, reset the clock
        - Back to OPEN: reset the clock and clear is_escalated

        WHY: Every status transition starts a new observation window. A
        reopened ticket starts over from zero instead of being escalated
        for time spent while someone was working on it.

        HOW: With a session, runs inside the caller's transaction. The
        caller must hold ticket_lock(ticket_id) and commit before releasing
        it. Without a session, takes the lock, opens and commits its own.

        Args:
            ticket_id: Ticket ID
            old_status: Status before the change
            new_status: Status after the change
            session: Caller's session, if already in a transaction

        Raises:
            TicketNotFoundError: If the ticket doesn't exist
        """
        if old_status == new_status:
            logger.debug(f"Ticket {ticket_id} status unchanged ({new_status.value}), nothing to do")
            return

        if session is not None:
            await self._apply_status_change(session, ticket_id, old_status, new_status)
            return

        async with self._locks.hold(ticket_id):
            async with self._session_factory() as own_session:
                try:
                    await self._apply_status_change(own_session, ticket_id, old_status, new_status)
                    await own_session.commit()
                except Exception:
                    await own_session.rollback()
                    raise

    async def _apply_status_change(
        self,
        session: AsyncSession,
        ticket_id: int,
        old_status: TicketStatus,
        new_status: TicketStatus,
    ) -> None:
        ticket_dao = TicketDAO(session)
        ticket = await ticket_dao.get_by_id(ticket_id, for_update=True)
        if ticket is None:
            raise TicketNotFoundError(ticket_id=ticket_id)

        now = self._clock()

        if new_status != TicketStatus.OPEN:
            resolved = await TicketEscalationDAO(session).resolve_all_unresolved(ticket_id, now)
            await ticket_dao.update_fields(ticket_id, response_clock_start=now)
            logger.info(
                f"Ticket {ticket.display_number} moved {old_status.value} -> {new_status.value}: "
                f"resolved {resolved} escalation(s), response clock reset"
            )
        else:
            await ticket_dao.update_fields(
                ticket_id,
                response_clock_start=now,
                is_escalated=False,
            )
            logger.info(
                f"Ticket {ticket.display_number} reopened from {old_status.value}: "
                f"response clock reset"
            )


# Singleton instance for the scheduler
_dispatcher: Optional[EscalationDispatcher] = None


def get_escalation_dispatcher() -> EscalationDispatcher:
    """Get or create the escalation dispatcher instance."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = EscalationDispatcher()
    return _dispatcher
