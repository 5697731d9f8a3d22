"""
Payment webhook reconciliation.

The provider delivers events at-least-once and in any order. Each call
verifies the event checksum, locks the order by payment reference and
applies the PENDING -> PAID transition at most once, issuing tickets in the
same transaction.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from cloudtickets import errors
from cloudtickets.config import Settings
from cloudtickets.issuer import issue_tickets
from cloudtickets.ledger import mark_paid
from cloudtickets.models import Order, OrderItem
from cloudtickets.schemas import PaymentTransaction, WebhookEnvelope
from cloudtickets.security import CredentialSigner, checksums_match, webhook_checksum

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    order_id: int
    transaction_status: Optional[str]
    already_paid: bool = False
    created_tickets: int = 0
    paid_now: bool = False


def parse_event(raw_body: bytes):
    """Decode the raw request body. Returns (json dict, envelope)."""
    try:
        body = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        raise errors.MalformedWebhook()
    if not isinstance(body, dict):
        raise errors.MalformedWebhook()

    try:
        envelope = WebhookEnvelope.model_validate(body)
    except ValidationError:
        raise errors.MalformedWebhook()
    return body, envelope


def verify_event(body: dict, envelope: WebhookEnvelope, events_secret: str) -> None:
    if not events_secret:
        raise errors.ConfigurationError("PAYMENT_CONFIG_MISSING")

    # Checksum is over the values as delivered, not over the parsed model
    expected = webhook_checksum(
        body.get("data") or {},
        envelope.signature.properties,
        body.get("timestamp"),
        events_secret,
    )
    if expected is None:
        raise errors.BadRequest("INVALID_SIGNATURE_DATA")

    if not checksums_match(expected, envelope.signature.checksum):
        logger.warning(f"Webhook checksum mismatch for event {envelope.event!r}")
        raise errors.InvalidSignature()


def reconcile_payment_event(db: Session, raw_body: bytes, settings: Settings, signer: CredentialSigner) -> ReconcileResult:
    # 1. Parse
    body, envelope = parse_event(raw_body)

    # 2-3. Integrity, fail closed
    verify_event(body, envelope, settings.PAYMENT_EVENTS_SECRET)

    try:
        tx = PaymentTransaction.model_validate(envelope.data.transaction)
    except ValidationError:
        raise errors.MalformedWebhook()
    if not tx.reference:
        raise errors.BadRequest("MISSING_REFERENCE")

    try:
        # 4. Lock the order; concurrent deliveries for this reference queue here
        order = (
            db.query(Order)
            .filter(Order.payment_reference == tx.reference)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if order is None:
            db.rollback()
            logger.info(f"Webhook for unknown reference {tx.reference}")
            raise errors.OrderNotFound()

        # 5. Mirror provider state whatever the outcome
        order.payment_provider = settings.PAYMENT_PROVIDER
        order.payment_status = tx.status
        order.payment_transaction_id = str(tx.id) if tx.id is not None else order.payment_transaction_id
        if tx.amount_in_cents is not None:
            order.payment_amount_cents = tx.amount_in_cents
        if tx.currency:
            order.payment_currency = tx.currency

        # 6. Not final yet; the provider will call again
        if tx.status != settings.PAYMENT_APPROVED_STATUS:
            db.commit()
            logger.info(f"Order {order.id} payment status {tx.status}")
            return ReconcileResult(order_id=order.id, transaction_status=tx.status)

        # 7. Redelivery of an approved event
        paid = mark_paid(db, order)
        if paid.already_paid:
            db.commit()
            logger.info(f"Order {order.id} already paid, no tickets issued")
            return ReconcileResult(order_id=order.id, transaction_status=tx.status, already_paid=True)

        # 8. First approval: issue inside the same transaction
        items = db.query(OrderItem).filter(OrderItem.order_id == order.id).order_by(OrderItem.id).all()
        tickets = issue_tickets(db, order, items, signer)
        db.commit()
    except errors.TicketingError:
        raise
    except Exception:
        db.rollback()
        logger.exception(f"Webhook transaction rolled back for reference {tx.reference}")
        raise

    logger.info(f"Order {order.id} paid, {len(tickets)} ticket(s) issued")
    return ReconcileResult(order_id=order.id, transaction_status=tx.status, created_tickets=len(tickets), paid_now=True)
