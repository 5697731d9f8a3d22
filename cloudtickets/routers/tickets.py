from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cloudtickets import errors
from cloudtickets.auth import CurrentUser, ROLE_ADMIN, ROLE_STAFF, get_current_user, require_roles
from cloudtickets.database import get_db
from cloudtickets.models import Ticket
from cloudtickets.schemas import AssignNfcRequest, TicketDetailResponse, TicketResponse

router = APIRouter(prefix="/api/tickets", tags=["tickets"])


def ticket_detail(ticket: Ticket) -> TicketDetailResponse:
    detail = TicketDetailResponse.model_validate(ticket)
    detail.event_id = ticket.ticket_type.event_id if ticket.ticket_type else None
    return detail


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
def get_ticket(ticket_id: int, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    ticket = db.get(Ticket, ticket_id)
    if ticket is None:
        raise errors.TicketNotFound()

    if ticket.owner_user_id != user.id and user.role not in (ROLE_ADMIN, ROLE_STAFF):
        raise HTTPException(status_code=403, detail="FORBIDDEN")

    return ticket_detail(ticket)


@router.patch("/{ticket_id}/assign-nfc", response_model=TicketResponse)
def assign_nfc(
    ticket_id: int,
    request: AssignNfcRequest,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_roles(ROLE_ADMIN, ROLE_STAFF)),
):
    """Bind a physical tag to an issued ticket. The credential signature does not cover it."""
    nfc_uid = (request.nfc_uid or "").strip()
    if not nfc_uid:
        raise errors.BadRequest("NO_NFC_UID")

    ticket = db.get(Ticket, ticket_id)
    if ticket is None:
        raise errors.TicketNotFound()

    other = db.query(Ticket).filter(Ticket.nfc_uid == nfc_uid, Ticket.id != ticket.id).first()
    if other is not None:
        raise errors.Conflict("NFC_UID_IN_USE")

    ticket.nfc_uid = nfc_uid
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise errors.Conflict("NFC_UID_IN_USE")

    return ticket
