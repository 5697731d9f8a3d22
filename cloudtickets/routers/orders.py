from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from cloudtickets import errors
from cloudtickets.auth import CurrentUser, ROLE_ADMIN, ROLE_STAFF, get_current_user
from cloudtickets.database import get_db
from cloudtickets.models import Order
from cloudtickets.schemas import OrderDetailResponse, OrderResponse

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.get("/", response_model=list[OrderResponse])
def list_my_orders(
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return (
        db.query(Order)
        .filter(Order.user_id == user.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


@router.get("/{order_id}", response_model=OrderDetailResponse)
def get_order(order_id: int, db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    order = db.get(Order, order_id)
    if order is None:
        raise errors.OrderNotFound()

    if order.user_id != user.id and user.role not in (ROLE_ADMIN, ROLE_STAFF):
        raise HTTPException(status_code=403, detail="FORBIDDEN")

    return order
