from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from socialize.core.config import settings
from socialize.db.sessions import get_db
from socialize.utils.logger import get_logger
import os

logger = get_logger(__name__)

router = APIRouter()


@router.get("", summary="Health check")
async def health(db: AsyncSession = Depends(get_db)):
    database = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check could not reach the database: {e}")
        database = "unavailable"

    return {
        "status": "success",
        "message": "Welcome to the Socialize API",
        "data": {
            "database": database,
            "publish_mode": settings.PUBLISH_MODE,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "git_commit": os.getenv("GIT_COMMIT"),
        },
    }
