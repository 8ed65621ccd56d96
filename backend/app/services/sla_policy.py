"""
SLA policy table.

WHAT: Per-priority response budgets and the admin escalation multiplier.

WHY: Every escalation decision needs two numbers per priority:
- response budget: minutes a ticket may wait before a warning
- escalation threshold: floor(budget * multiplier), minutes before admins
  are alerted

HOW: An immutable dataclass built from settings and injected into the
evaluator and dispatcher. Lookups never touch global state, so tests can
pass their own policy.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from app.core.config import Settings, settings as app_settings
from app.models.ticket import TicketPriority


logger = logging.getLogger(__name__)


DEFAULT_RESPONSE_MINUTES: Dict[TicketPriority, int] = {
    TicketPriority.URGENT: 5,
    TicketPriority.HIGH: 15,
    TicketPriority.MEDIUM: 30,
    TicketPriority.LOW: 60,
}
DEFAULT_FALLBACK_MINUTES = 30
DEFAULT_ESCALATION_MULTIPLIER = 1.5


@dataclass(frozen=True)
class SLAPolicy:
    """
    Response-time budgets per ticket priority.

    WHAT: Pure lookup table for SLA budgets and escalation thresholds.

    WHY: A misconfigured policy must never stop the escalation engine.
    Invalid values fall back to the defaults with a logged warning.
    """

    response_minutes: Dict[TicketPriority, int] = field(
        default_factory=lambda: dict(DEFAULT_RESPONSE_MINUTES)
    )
    """Response budget in minutes per priority."""

    default_response_minutes: int = DEFAULT_FALLBACK_MINUTES
    """Budget for a missing or unknown priority."""

    escalation_multiplier: float = DEFAULT_ESCALATION_MULTIPLIER
    """Admin escalation fires at floor(budget * multiplier)."""

    def __post_init__(self) -> None:
        budgets = {}
        for priority in TicketPriority:
            minutes = self.response_minutes.get(priority)
            if not _is_positive_int(minutes):
                logger.warning(
                    f"Invalid SLA budget {minutes!r} for priority {priority.value}, "
                    f"using default {DEFAULT_RESPONSE_MINUTES[priority]}"
                )
                minutes = DEFAULT_RESPONSE_MINUTES[priority]
            budgets[priority] = minutes
        # Frozen dataclass: assign through object.__setattr__
        object.__setattr__(self, "response_minutes", budgets)

        if not _is_positive_int(self.default_response_minutes):
            logger.warning(
                f"Invalid default SLA budget {self.default_response_minutes!r}, "
                f"using {DEFAULT_FALLBACK_MINUTES}"
            )
            object.__setattr__(self, "default_response_minutes", DEFAULT_FALLBACK_MINUTES)

        multiplier = self.escalation_multiplier
        if (
            isinstance(multiplier, bool)
            or not isinstance(multiplier, (int, float))
            or not math.isfinite(multiplier)
            or multiplier < 1.0
        ):
            logger.warning(
                f"Invalid SLA escalation multiplier {multiplier!r}, "
                f"using {DEFAULT_ESCALATION_MULTIPLIER}"
            )
            object.__setattr__(self, "escalation_multiplier", DEFAULT_ESCALATION_MULTIPLIER)

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "SLAPolicy":
        """
        Build the policy from application settings.

        Args:
            config: Settings instance (defaults to the global settings)

        Returns:
            SLAPolicy with validated values
        """
        config = config or app_settings
        return cls(
            response_minutes={
                TicketPriority.URGENT: config.SLA_RESPONSE_MINUTES_URGENT,
                TicketPriority.HIGH: config.SLA_RESPONSE_MINUTES_HIGH,
                TicketPriority.MEDIUM: config.SLA_RESPONSE_MINUTES_MEDIUM,
                TicketPriority.LOW: config.SLA_RESPONSE_MINUTES_LOW,
            },
            default_response_minutes=config.SLA_DEFAULT_RESPONSE_MINUTES,
            escalation_multiplier=config.SLA_ESCALATION_MULTIPLIER,
        )

    def response_budget_minutes(
        self,
        priority: Optional[Union[TicketPriority, str]],
    ) -> int:
        """
        Minutes a ticket of this priority may wait before a warning.

        Args:
            priority: Ticket priority (enum or raw value)

        Returns:
            Budget in minutes, the default budget for unknown priorities
        """
        try:
            key = TicketPriority(priority)
        except ValueError:
            return self.default_response_minutes
        return self.response_minutes.get(key, self.default_response_minutes)

    def escalation_threshold_minutes(
        self,
        priority: Optional[Union[TicketPriority, str]],
    ) -> int:
        """
        Minutes a ticket of this priority may wait before admin escalation.

        Example:
            >>> SLAPolicy().escalation_threshold_minutes(TicketPriority.URGENT)
            7
        """
        return math.floor(self.response_budget_minutes(priority) * self.escalation_multiplier)


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0
