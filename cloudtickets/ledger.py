"""
Order lifecycle: checkout creates a PENDING order with its line items,
and ``mark_paid`` is the single path that moves it to PAID.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Sequence

from sqlalchemy.orm import Session

from cloudtickets import errors
from cloudtickets.config import Settings
from cloudtickets.models import Order, OrderItem, OrderStatus, TicketType
from cloudtickets.schemas import BuyerIn, LineItemIn

logger = logging.getLogger(__name__)


@dataclass
class MarkPaidResult:
    already_paid: bool


def generate_payment_reference(prefix: str, user_id: int) -> str:
    # <prefix>-<ms timestamp>-<padded user id>-<random suffix>
    return f"{prefix}-{int(time.time() * 1000)}-{str(user_id or 0).zfill(4)}-{secrets.token_hex(3)}"


def _validate_buyer(buyer: BuyerIn) -> None:
    if buyer is None or not (buyer.name or "").strip() or not (buyer.email or "").strip():
        raise errors.BadRequest(message="Buyer name and email are required")


def _validate_quantities(items: Sequence[LineItemIn]) -> None:
    if not items:
        raise errors.BadRequest(message="At least one line item is required")
    for item in items:
        qty = item.quantity
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
            raise errors.InvalidQuantity()


def create_order(db: Session, user_id: int, buyer: BuyerIn, items: List[LineItemIn], settings: Settings) -> Order:
    """
    Persist a PENDING order and its items in one transaction.

    Prices are re-read from the ticket types here; the client never supplies
    an amount. On any failure nothing is left behind.
    """
    _validate_buyer(buyer)
    _validate_quantities(items)

    type_ids = {item.ticket_type_id for item in items}
    types_by_id = {
        t.id: t for t in db.query(TicketType).filter(TicketType.id.in_(type_ids)).all()
    }
    missing = type_ids - set(types_by_id)
    if missing:
        logger.info(f"Checkout rejected, unknown ticket types: {sorted(missing)}")
        raise errors.TicketTypeNotFound()

    total_cents = 0
    total_display = 0.0
    for item in items:
        ticket_type = types_by_id[item.ticket_type_id]
        total_cents += ticket_type.price_cents * item.quantity
        total_display += (ticket_type.price_display or 0) * item.quantity

    order = Order(
        user_id=user_id,
        status=OrderStatus.PENDING,
        total_cents=total_cents,
        total_display=total_display,
        payment_provider=settings.PAYMENT_PROVIDER,
        payment_reference=generate_payment_reference(settings.PAYMENT_REFERENCE_PREFIX, user_id),
        payment_status=OrderStatus.PENDING,
        payment_amount_cents=total_cents,
        payment_currency=settings.PAYMENT_CURRENCY,
        buyer_name=buyer.name.strip(),
        buyer_email=buyer.email.strip(),
        buyer_phone=buyer.phone or None,
        buyer_national_id=buyer.national_id or None,
    )

    try:
        db.add(order)
        db.flush()
        for item in items:
            db.add(OrderItem(order_id=order.id, ticket_type_id=item.ticket_type_id, quantity=item.quantity))
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Checkout transaction rolled back")
        raise

    db.refresh(order)
    logger.info(f"Created order {order.id} ref={order.payment_reference} total_cents={total_cents}")
    return order


def mark_paid(db: Session, order: Order) -> MarkPaidResult:
    """
    Idempotent PENDING -> PAID. The caller holds the order row lock and owns
    the transaction; nothing is committed here.
    """
    now = datetime.now(timezone.utc)
    if order.status == OrderStatus.PAID:
        if order.paid_at is None:
            order.paid_at = now
        return MarkPaidResult(already_paid=True)

    order.status = OrderStatus.PAID
    order.paid_at = now
    db.flush()
    return MarkPaidResult(already_paid=False)
