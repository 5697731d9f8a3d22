"""
Post-commit ticket delivery. Runs as a background task after the webhook has
responded; whatever happens here never touches payment or ticket state.
"""

import logging
from datetime import datetime, timezone
from typing import List, Protocol

from cloudtickets.database import SessionLocal, session_scope
from cloudtickets.models import Order, Ticket

logger = logging.getLogger(__name__)


class TicketNotifier(Protocol):
    def send(self, order: Order, tickets: List[Ticket]) -> None: ...


class LoggingNotifier:
    """Default notifier until a mail/PDF renderer is wired in."""

    def send(self, order: Order, tickets: List[Ticket]) -> None:
        logger.info(f"Delivering {len(tickets)} ticket(s) for order {order.id} to {order.buyer_email}")


class TicketDelivery:
    def __init__(self, notifier: TicketNotifier = None, session_factory=SessionLocal):
        self.notifier = notifier or LoggingNotifier()
        self.session_factory = session_factory

    def deliver(self, order_id: int) -> bool:
        """Send tickets once per order; ``tickets_sent_at`` is the send-state."""
        try:
            with session_scope(self.session_factory) as db:
                order = db.get(Order, order_id)
                if order is None:
                    logger.warning(f"Delivery skipped, order {order_id} not found")
                    return False
                if order.tickets_sent_at is not None:
                    return False

                tickets = db.query(Ticket).filter(Ticket.order_id == order_id).order_by(Ticket.id).all()
                if not tickets:
                    logger.warning(f"Delivery skipped, order {order_id} has no tickets")
                    return False

                self.notifier.send(order, tickets)
                order.tickets_sent_at = datetime.now(timezone.utc)
            return True
        except Exception:
            logger.exception(f"Ticket delivery failed for order {order_id}")
            return False


def get_ticket_delivery() -> TicketDelivery:
    return TicketDelivery()
