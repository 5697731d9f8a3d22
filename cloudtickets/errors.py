"""
Domain errors. Each carries the machine code returned to the client
and the HTTP status it maps to.
"""
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

VALIDATE_PATH = "/api/validate-ticket"


class TicketingError(Exception):
    status_code = 500
    code = "SERVER_ERROR"

    def __init__(self, code: str = None, message: str = None):
        if code:
            self.code = code
        super().__init__(message or self.code)


class BadRequest(TicketingError):
    status_code = 400
    code = "VALIDATION_ERROR"


class TicketTypeNotFound(BadRequest):
    code = "TICKET_TYPE_NOT_FOUND"


class InvalidQuantity(BadRequest):
    code = "INVALID_QUANTITY"


class MalformedWebhook(BadRequest):
    code = "INVALID_WEBHOOK_BODY"


class InvalidSignature(TicketingError):
    status_code = 401
    code = "INVALID_SIGNATURE"


class NotFound(TicketingError):
    status_code = 404
    code = "NOT_FOUND"


class OrderNotFound(NotFound):
    code = "ORDER_NOT_FOUND"


class TicketNotFound(NotFound):
    code = "TICKET_NOT_FOUND"


class Conflict(TicketingError):
    status_code = 409
    code = "CONFLICT"


class ConfigurationError(TicketingError):
    status_code = 500
    code = "CONFIGURATION_ERROR"


async def ticketing_error_handler(request: Request, exc: TicketingError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.code})


def _is_quantity_error(error: dict) -> bool:
    loc = error.get("loc") or ()
    return len(loc) >= 2 and loc[-1] == "quantity" and "items" in loc


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Request bodies pydantic rejects still answer 400 with a machine code."""
    if request.url.path.rstrip("/") == VALIDATE_PATH:
        return JSONResponse(status_code=400, content={"valid": False, "reason": "INVALID_TYPE"})

    if any(_is_quantity_error(e) for e in exc.errors()):
        code = InvalidQuantity.code
    else:
        code = BadRequest.code
    return JSONResponse(status_code=400, content={"detail": code})
