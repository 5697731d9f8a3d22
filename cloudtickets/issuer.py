import logging
from datetime import timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from cloudtickets.models import Event, Order, OrderItem, Ticket, TicketStatus, TicketType
from cloudtickets.schemas import TicketCredential
from cloudtickets.security import CredentialSigner, generate_credential_id

logger = logging.getLogger(__name__)


def credential_expiry(event: Optional[Event]) -> Optional[int]:
    if event is None or event.end_datetime is None:
        return None
    end = event.end_datetime
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    return int(end.timestamp())


def build_credential(signer: CredentialSigner, ticket_id: str, event_id: int, expiry: Optional[int], order: Order) -> TicketCredential:
    return TicketCredential(
        ticket_id=ticket_id,
        event_id=event_id,
        expiry=expiry,
        holder_name=order.buyer_name,
        holder_email=order.buyer_email,
        holder_phone=order.buyer_phone,
        signature=signer.sign(ticket_id, event_id, expiry),
    )


def issue_tickets(db: Session, order: Order, items: List[OrderItem], signer: CredentialSigner) -> List[Ticket]:
    """
    One ACTIVE ticket per purchased unit, each with its own signed credential.

    Runs inside the caller's transaction and must be called once per paid
    order. Items whose ticket type has disappeared are skipped: payment is
    already captured, so the order is never rolled back from here.
    """
    tickets = []

    for item in items:
        qty = item.quantity or 0
        if qty <= 0:
            continue

        ticket_type = db.get(TicketType, item.ticket_type_id)
        if ticket_type is None:
            logger.warning(f"Order {order.id}: ticket type {item.ticket_type_id} missing, skipping {qty} ticket(s)")
            continue

        expiry = credential_expiry(ticket_type.event)

        for _ in range(qty):
            unique_code = generate_credential_id()
            credential = build_credential(signer, unique_code, ticket_type.event_id, expiry, order)

            ticket = Ticket(
                order_id=order.id,
                ticket_type_id=ticket_type.id,
                owner_user_id=order.user_id,
                unique_code=unique_code,
                qr_payload=credential.to_wire(),
                status=TicketStatus.ACTIVE,
                holder_name=order.buyer_name,
                holder_email=order.buyer_email,
                holder_phone=order.buyer_phone,
                holder_national_id=order.buyer_national_id,
            )
            db.add(ticket)
            tickets.append(ticket)

    db.flush()
    logger.info(f"Issued {len(tickets)} ticket(s) for order {order.id}")
    return tickets
