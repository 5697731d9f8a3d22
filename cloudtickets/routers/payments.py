import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from cloudtickets import errors
from cloudtickets.config import Settings, get_settings
from cloudtickets.database import get_db
from cloudtickets.delivery import TicketDelivery, get_ticket_delivery
from cloudtickets.reconciler import reconcile_payment_event
from cloudtickets.schemas import WebhookResponse
from cloudtickets.security import CredentialSigner, get_credential_signer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("/webhook", response_model=WebhookResponse, status_code=status.HTTP_200_OK)
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    signer: CredentialSigner = Depends(get_credential_signer),
    delivery: TicketDelivery = Depends(get_ticket_delivery),
):
    """
    Provider event callback. Any 2xx tells the provider to stop retrying, so
    "not approved yet" and "already paid" both answer 200.
    """
    # Raw bytes: the checksum covers the values as sent
    raw_body = await request.body()

    try:
        # Sync DB work, including the row lock wait, runs in the threadpool
        result = await run_in_threadpool(reconcile_payment_event, db, raw_body, settings, signer)
    except errors.TicketingError:
        raise
    except Exception:
        logger.exception("Error processing payment webhook")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="WEBHOOK_ERROR")

    if result.paid_now:
        background_tasks.add_task(delivery.deliver, result.order_id)

    return WebhookResponse(
        ok=True,
        status=result.transaction_status,
        already_paid=result.already_paid,
        created_tickets=result.created_tickets,
    )
