from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from cloudtickets.auth import get_current_device
from cloudtickets.checkin import (
    MalformedCredential,
    REASON_BAD_SIGNATURE,
    REASON_EXPIRED,
    REASON_NOT_FOUND,
    validate_credential,
)
from cloudtickets.database import get_db
from cloudtickets.models import Device
from cloudtickets.schemas import ValidateRequest, ValidateResponse
from cloudtickets.security import CredentialSigner, get_credential_signer

router = APIRouter(prefix="/api/validate-ticket", tags=["validate"])

# Rejections that are client errors; duplicates and inactive tickets answer 200
REASON_STATUS = {
    REASON_BAD_SIGNATURE: 400,
    REASON_EXPIRED: 400,
    REASON_NOT_FOUND: 404,
}


@router.post("", response_model=ValidateResponse)
def validate_ticket(
    request: ValidateRequest,
    db: Session = Depends(get_db),
    device: Device = Depends(get_current_device),
    signer: CredentialSigner = Depends(get_credential_signer),
):
    try:
        outcome = validate_credential(db, device, request.payload, signer)
    except MalformedCredential as e:
        return JSONResponse(status_code=400, content={"valid": False, "reason": e.code})

    response = ValidateResponse(
        valid=outcome.valid,
        reason=outcome.reason,
        used_at=outcome.used_at,
        event_id=outcome.event_id,
    )
    status_code = REASON_STATUS.get(outcome.reason, 200)
    if status_code != 200:
        return JSONResponse(status_code=status_code, content=response.model_dump(mode="json", by_alias=True))
    return response
