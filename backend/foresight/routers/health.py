import structlog
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from foresight.db.session import get_db
from foresight.scheduler.setup import scheduler
from foresight.schemas.common import fail, meta_now, ok

router = APIRouter(prefix="/api/health", tags=["health"])
logger = structlog.get_logger(__name__)


@router.get("")
def healthcheck(db: Session = Depends(get_db)):
    """Liveness plus a database round-trip; 503 when the database is unreachable."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("health.database_unavailable", error=str(exc))
        return fail(code="DATABASE_UNAVAILABLE", message="Database unavailable", status_code=503)
    return ok(
        data={
            "status": "ok",
            "database": "ok",
            "scheduler": "running" if scheduler.running else "stopped",
        },
        meta=meta_now(),
    )
