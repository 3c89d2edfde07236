# backend/careslot/services/billing_gateway.py
"""
Billing collaborator port.

The engine never talks to a payment provider. After a transition commits it
hands a ``BillingOutcome`` (keyed by the booking's invoice reference) to the
billing layer, which decides on capture, refund, void or forfeiture.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass
class BillingOutcome:
    """Transition outcome reported to billing."""

    booking_id: str
    invoice_id: Optional[str]
    event: str  # confirmed | rejected | cancelled | completed | no_show_client | no_show_provider
    occurred_at: datetime
    threshold_exceeded: bool = False
    cancelled_by_role: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["occurred_at"] = self.occurred_at.isoformat()
        return data


@runtime_checkable
class BillingGateway(Protocol):
    def report_outcome(self, outcome: BillingOutcome) -> None:
        ...


class LoggingBillingGateway:
    """Default gateway: logs outcomes for the billing pipeline to pick up."""

    def report_outcome(self, outcome: BillingOutcome) -> None:
        logger.info(
            "Billing outcome %s for booking %s",
            outcome.event,
            outcome.booking_id,
            extra=outcome.to_dict(),
        )
