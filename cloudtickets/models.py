from sqlalchemy import Column, Integer, String, DateTime, Float, Text, ForeignKey, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from cloudtickets.database import Base


class OrderStatus:
    PENDING = "PENDING"
    PAID = "PAID"


class TicketStatus:
    ACTIVE = "ACTIVE"
    USED = "USED"
    INACTIVE = "INACTIVE"


class CheckinResult:
    VALID = "VALID"
    INVALID = "INVALID"
    DUPLICATE = "DUPLICATE"


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    start_datetime = Column(DateTime(timezone=True))
    # When set, issued credentials expire at this instant
    end_datetime = Column(DateTime(timezone=True))

    ticket_types = relationship("TicketType", back_populates="event")


class TicketType(Base):
    __tablename__ = "ticket_types"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    price_cents = Column(Integer, nullable=False, default=0)
    price_display = Column(Float, nullable=False, default=0)

    event = relationship("Event", back_populates="ticket_types")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, index=True)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING, index=True)

    total_cents = Column(Integer, nullable=False, default=0)
    total_display = Column(Float, nullable=False, default=0)

    payment_provider = Column(String(50))
    payment_reference = Column(String(100), unique=True, index=True, nullable=False)
    # Mirror of the provider's own transaction status
    payment_status = Column(String(50))
    payment_transaction_id = Column(String(100))
    payment_amount_cents = Column(Integer)
    payment_currency = Column(String(10))

    # Buyer snapshot taken at checkout, independent of the user account
    buyer_name = Column(String(200), nullable=False)
    buyer_email = Column(String(200), nullable=False)
    buyer_phone = Column(String(50))
    buyer_national_id = Column(String(50))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    paid_at = Column(DateTime(timezone=True))
    tickets_sent_at = Column(DateTime(timezone=True))

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")
    tickets = relationship("Ticket", back_populates="order", order_by="Ticket.id")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    ticket_type_id = Column(Integer, ForeignKey("ticket_types.id"), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    ticket_type_id = Column(Integer, ForeignKey("ticket_types.id"), nullable=False)
    owner_user_id = Column(Integer, index=True)

    unique_code = Column(String(64), unique=True, index=True, nullable=False)
    qr_payload = Column(Text, nullable=False)

    status = Column(String(20), nullable=False, default=TicketStatus.ACTIVE, index=True)

    holder_name = Column(String(200))
    holder_email = Column(String(200))
    holder_phone = Column(String(50))
    holder_national_id = Column(String(50))

    nfc_uid = Column(String(100), unique=True, index=True)
    used_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("Order", back_populates="tickets")
    ticket_type = relationship("TicketType")
    checkins = relationship("Checkin", back_populates="ticket")


class Device(Base):
    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    api_key = Column(String(100), unique=True, index=True, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Checkin(Base):
    """Append-only audit row for every redemption attempt."""
    __tablename__ = "checkins"

    id = Column(Integer, primary_key=True, index=True)
    # Null when the credential never resolved to an issued ticket
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=True, index=True)
    device_id = Column(Integer, ForeignKey("devices.id"), index=True)

    result = Column(String(20), nullable=False, index=True)
    reason = Column(String(50), nullable=False)
    raw_payload = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    ticket = relationship("Ticket", back_populates="checkins")
