"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
"""
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from servicedesk.core.config import settings
from servicedesk.core.deps import get_db
from servicedesk.schemas.common import ApiResponse
from servicedesk.schemas.sla import SlaBreachSweepResult
from servicedesk.services import sla_service


router = APIRouter(prefix="/internal/scheduled", tags=["internal"])


def verify_internal_secret(x_internal_secret: str = Header(...)):
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")


@router.post(
    "/sla-breaches",
    response_model=ApiResponse[SlaBreachSweepResult],
    dependencies=[Depends(verify_internal_secret)],
)
def sweep_sla_breaches(db: Session = Depends(get_db)):
    """Flag tickets whose first-response or resolution deadline has passed."""
    result = sla_service.check_sla_breaches(db)
    return ApiResponse(data=SlaBreachSweepResult.model_validate(result))
