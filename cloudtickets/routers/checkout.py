from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cloudtickets import errors
from cloudtickets.auth import CurrentUser, ROLE_ADMIN, ROLE_CLIENT, require_roles
from cloudtickets.config import Settings, get_settings
from cloudtickets.database import get_db
from cloudtickets.ledger import create_order
from cloudtickets.schemas import CheckoutRequest, CheckoutResponse, OrderResponse, ProviderCheckout
from cloudtickets.security import checkout_integrity_signature

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.post("/start", response_model=CheckoutResponse)
def start_checkout(
    request: CheckoutRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user: CurrentUser = Depends(require_roles(ROLE_CLIENT, ROLE_ADMIN)),
):
    """Create a PENDING order and hand back the provider widget parameters."""
    if not (settings.PAYMENT_PUBLIC_KEY and settings.PAYMENT_INTEGRITY_SECRET and settings.PAYMENT_REDIRECT_URL):
        raise errors.ConfigurationError("PAYMENT_CONFIG_MISSING")

    order = create_order(db, user.id, request.customer, request.items, settings)

    checkout = ProviderCheckout(
        public_key=settings.PAYMENT_PUBLIC_KEY,
        currency=order.payment_currency,
        amount_in_cents=order.total_cents,
        reference=order.payment_reference,
        signature=checkout_integrity_signature(
            order.payment_reference, order.total_cents, order.payment_currency, settings.PAYMENT_INTEGRITY_SECRET
        ),
        redirect_url=settings.PAYMENT_REDIRECT_URL,
    )

    return CheckoutResponse(
        order_id=order.id,
        order=OrderResponse.model_validate(order),
        checkout=checkout,
    )
