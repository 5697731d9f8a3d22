import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from cloudtickets.config import settings
from cloudtickets.errors import TicketingError, request_validation_handler, ticketing_error_handler
from cloudtickets.routers import checkout, orders, payments, tickets, validate

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Deferred DB initialisation; the database may come up after the API
    max_retries = 5
    for i in range(max_retries):
        try:
            from cloudtickets.database import engine, Base
            from cloudtickets import models  # noqa: F401
            Base.metadata.create_all(bind=engine)
            logger.info("Database tables created")
            break
        except Exception as e:
            logger.warning(f"DB connection attempt {i+1}/{max_retries} failed: {e}")
            if i < max_retries - 1:
                time.sleep(2)
            else:
                logger.error("Could not connect to database, continuing anyway")
    yield
    logger.info("Shutting down")


app = FastAPI(
    title=settings.APP_NAME,
    description="Ticket sales, payment reconciliation and gate check-in",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(TicketingError, ticketing_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

app.include_router(checkout.router)
app.include_router(orders.router)
app.include_router(payments.router)
app.include_router(tickets.router)
app.include_router(validate.router)


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": settings.APP_NAME}


@app.get("/")
def root():
    return {
        "service": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "start_checkout": "POST /api/checkout/start",
            "list_orders": "GET /api/orders/",
            "payment_webhook": "POST /api/payments/webhook",
            "get_ticket": "GET /api/tickets/{id}",
            "assign_nfc": "PATCH /api/tickets/{id}/assign-nfc",
            "validate_ticket": "POST /api/validate-ticket",
        }
    }
