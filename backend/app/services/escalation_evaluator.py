"""
Escalation evaluator.

WHAT: Pure decision function for the SLA state machine.

WHY: Deciding what to raise is separated from doing it. The evaluator
never reads the database, the clock or settings, so every rule can be
tested with plain values:
1. WARNING when an open ticket has waited at least its response budget
2. ESCALATION when it has waited at least the escalation threshold and a
   warning is open (or raised in the same evaluation)

HOW: Takes a ticket snapshot, the unresolved levels of the current breach
cycle, the policy and `now`. Returns the ordered actions plus the metrics
used in notification payloads.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import AbstractSet, Optional, Tuple

from app.models.ticket import TicketPriority, TicketStatus
from app.models.ticket_escalation import EscalationLevel
from app.services.sla_policy import SLAPolicy


class EscalationAction(str, Enum):
    """Side effect the dispatcher must apply to a ticket."""

    RAISE_WARNING = "raise_warning"
    RAISE_ESCALATION = "raise_escalation"


@dataclass(frozen=True)
class TicketSnapshot:
    """Fields of a ticket the evaluator reads."""

    ticket_id: int
    status: TicketStatus
    priority: Optional[TicketPriority]
    response_start_time: datetime

    @classmethod
    def from_ticket(cls, ticket) -> "TicketSnapshot":
        """Capture a Ticket model instance."""
        return cls(
            ticket_id=ticket.id,
            status=ticket.status,
            priority=ticket.priority,
            response_start_time=ticket.response_start_time,
        )


@dataclass(frozen=True)
class EscalationMetrics:
    """Numbers behind a decision, reused in notification messages."""

    minutes_elapsed: int
    response_budget_minutes: int
    escalation_threshold_minutes: int


@dataclass(frozen=True)
class EscalationDecision:
    """Result of evaluating one ticket."""

    actions: Tuple[EscalationAction, ...]
    """Actions in application order (warning before escalation)."""

    metrics: EscalationMetrics

    @property
    def has_actions(self) -> bool:
        return bool(self.actions)


def elapsed_minutes(start: datetime, now: datetime) -> int:
    """Whole minutes from start to now, floored and never negative."""
    return max(0, int((now - start).total_seconds() // 60))


def evaluate(
    ticket: TicketSnapshot,
    unresolved_levels: AbstractSet[EscalationLevel],
    policy: SLAPolicy,
    now: datetime,
) -> EscalationDecision:
    """
    Decide which escalation stages to raise for a ticket.

    WHAT: Applies the warning and escalation rules to one ticket.

    WHY: Idempotence comes from the unresolved levels. A stage that is
    already open in the current breach cycle is never raised again.

    Args:
        ticket: Ticket snapshot
        unresolved_levels: Levels with an unresolved record for this ticket
        policy: SLA policy table
        now: Current time from the injected clock

    Returns:
        EscalationDecision with ordered actions and metrics

    Example:
        >>> decision = evaluate(snapshot, set(), SLAPolicy(), now)
        >>> decision.actions
        (<EscalationAction.RAISE_WARNING: 'raise_warning'>,)
    """
    budget = policy.response_budget_minutes(ticket.priority)
    threshold = policy.escalation_threshold_minutes(ticket.priority)
    elapsed = elapsed_minutes(ticket.response_start_time, now)
    metrics = EscalationMetrics(
        minutes_elapsed=elapsed,
        response_budget_minutes=budget,
        escalation_threshold_minutes=threshold,
    )

    if ticket.status != TicketStatus.OPEN:
        return EscalationDecision(actions=(), metrics=metrics)

    actions = []
    has_warning = EscalationLevel.WARNING in unresolved_levels

    if not has_warning and elapsed >= budget:
        actions.append(EscalationAction.RAISE_WARNING)
        has_warning = True

    if (
        EscalationLevel.ESCALATED not in unresolved_levels
        and has_warning
        and elapsed >= threshold
    ):
        actions.append(EscalationAction.RAISE_ESCALATION)

    return EscalationDecision(actions=tuple(actions), metrics=metrics)
