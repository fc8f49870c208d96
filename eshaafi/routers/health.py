# eshaafi/routers/health.py
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..config import get_settings
from ..database import get_db
from ..security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health Checks"],
    responses={404: {"description": "Not found"}},
)


@router.get("")
async def health_check():
    settings = get_settings()
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.app_version,
        "video_enabled": settings.video_enabled,
    }


@router.get("/consistency-check", response_model=schemas.ConsistencyReport, dependencies=[Depends(require_admin)])
def check_system_consistency(db: Session = Depends(get_db)):
    """
    Scans stored bookings and reviews for invariant violations.
    Accessible only by admin users.
    """
    logger.info("Running booking consistency checks")
    report = crud.run_consistency_checks(db=db)
    issues = sum(len(v) for k, v in report.items() if k != "checked_at")
    logger.info(f"Consistency checks completed with {issues} issue(s)")
    return report
