from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from fitsocial.core.deps import SessionDep
from fitsocial.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: SessionDep):
    """API liveness plus a SELECT 1 against the database."""
    status = {"api": "ok", "db": "ok"}
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database error: {e}")
        status["db"] = "error"
    return status
