"""
Ticket redemption at the gate.

Every attempt that gets past structural checks leaves a Checkin row, and
the ACTIVE -> USED transition is a compare-and-set so that concurrent or
retried scans of the same credential redeem it at most once.
"""

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from cloudtickets import errors
from cloudtickets.models import Checkin, CheckinResult, Device, Ticket, TicketStatus
from cloudtickets.schemas import CREDENTIAL_TYPE, TicketCredential
from cloudtickets.security import CredentialSigner

logger = logging.getLogger(__name__)

REASON_OK = "OK"
REASON_INVALID_TYPE = "INVALID_TYPE"
REASON_INVALID_PAYLOAD = "INVALID_PAYLOAD"
REASON_BAD_SIGNATURE = "BAD_SIGNATURE"
REASON_EXPIRED = "EXPIRED"
REASON_NOT_FOUND = "NOT_FOUND"
REASON_ALREADY_USED = "ALREADY_USED"
REASON_INACTIVE = "INACTIVE"


class MalformedCredential(errors.BadRequest):
    code = REASON_INVALID_PAYLOAD


@dataclass
class CheckinOutcome:
    valid: bool
    result: str
    reason: str
    ticket_id: Optional[int] = None
    event_id: Optional[int] = None
    used_at: Optional[datetime] = None


def parse_credential(payload: Any) -> TicketCredential:
    if not isinstance(payload, dict) or payload.get("t") != CREDENTIAL_TYPE:
        raise MalformedCredential(REASON_INVALID_TYPE)
    try:
        return TicketCredential.model_validate(payload)
    except ValidationError:
        raise MalformedCredential(REASON_INVALID_PAYLOAD)


def find_ticket(db: Session, unique_code: str) -> Optional[Ticket]:
    return db.query(Ticket).filter(Ticket.unique_code == unique_code).populate_existing().first()


def log_checkin(db: Session, ticket_id, device: Device, result: str, reason: str, raw_payload: str) -> None:
    db.add(Checkin(
        ticket_id=ticket_id,
        device_id=device.id if device else None,
        result=result,
        reason=reason,
        raw_payload=raw_payload,
    ))
    db.commit()


def _reject(db, ticket_id, device, result, reason, raw, **extra) -> CheckinOutcome:
    log_checkin(db, ticket_id, device, result, reason, raw)
    logger.info(f"Checkin rejected: {reason} ticket={ticket_id} device={device.id if device else None}")
    return CheckinOutcome(valid=False, result=result, reason=reason, ticket_id=ticket_id, **extra)


def _reject_for_status(db, ticket: Ticket, device, raw, event_id) -> Optional[CheckinOutcome]:
    if ticket.status == TicketStatus.USED:
        return _reject(db, ticket.id, device, CheckinResult.DUPLICATE, REASON_ALREADY_USED, raw,
                       event_id=event_id, used_at=ticket.used_at)
    if ticket.status != TicketStatus.ACTIVE:
        return _reject(db, ticket.id, device, CheckinResult.INVALID, REASON_INACTIVE, raw, event_id=event_id)
    return None


def validate_credential(db: Session, device: Device, payload: Any, signer: CredentialSigner, now: float = None) -> CheckinOutcome:
    # 1. Structure; nothing is logged for input that never names a ticket
    credential = parse_credential(payload)
    raw = json.dumps(payload, ensure_ascii=False)
    now = time.time() if now is None else now

    # 2. Signature; identity is not trusted yet so the audit row has no ticket
    if not signer.verify(credential.ticket_id, credential.event_id, credential.expiry, credential.signature):
        logger.warning(f"Bad credential signature from device {device.id if device else None}")
        return _reject(db, None, device, CheckinResult.INVALID, REASON_BAD_SIGNATURE, raw)

    # 3. Expiry
    if credential.expiry and now > credential.expiry:
        return _reject(db, None, device, CheckinResult.INVALID, REASON_EXPIRED, raw)

    # 4. A valid signature alone does not prove the ticket was issued
    ticket = find_ticket(db, credential.ticket_id)
    if ticket is None:
        return _reject(db, None, device, CheckinResult.INVALID, REASON_NOT_FOUND, raw)

    # 5-6. Replay and non-redeemable states
    rejected = _reject_for_status(db, ticket, device, raw, credential.event_id)
    if rejected:
        return rejected

    # 7. Compare-and-set plus audit row in one transaction
    used_at = datetime.now(timezone.utc)
    try:
        updated = (
            db.query(Ticket)
            .filter(Ticket.id == ticket.id, Ticket.status == TicketStatus.ACTIVE)
            .update({Ticket.status: TicketStatus.USED, Ticket.used_at: used_at}, synchronize_session=False)
        )
        if updated == 0:
            db.rollback()
        else:
            db.add(Checkin(
                ticket_id=ticket.id,
                device_id=device.id if device else None,
                result=CheckinResult.VALID,
                reason=REASON_OK,
                raw_payload=raw,
            ))
            db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"Redemption of ticket {ticket.id} rolled back")
        raise

    if updated == 0:
        # Lost the race to a concurrent redemption
        db.refresh(ticket)
        logger.info(f"Ticket {ticket.id} redeemed concurrently, reporting duplicate")
        return _reject_for_status(db, ticket, device, raw, credential.event_id) or _reject(
            db, ticket.id, device, CheckinResult.DUPLICATE, REASON_ALREADY_USED, raw,
            event_id=credential.event_id, used_at=ticket.used_at,
        )

    # 8. Only reported after commit
    logger.info(f"Ticket {ticket.id} redeemed by device {device.id if device else None}")
    return CheckinOutcome(
        valid=True,
        result=CheckinResult.VALID,
        reason=REASON_OK,
        ticket_id=ticket.id,
        event_id=credential.event_id,
        used_at=used_at,
    )
