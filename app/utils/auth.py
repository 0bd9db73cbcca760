from fastapi import Depends
from fastapi.security import APIKeyCookie
from app.database import get_db
from app.core.errors import ExamifyError, Forbidden
from app.services.auth.auth_service import AuthService
from sqlalchemy.ext.asyncio import AsyncSession
from app import models
from typing import Optional
import logging

logger = logging.getLogger(__name__)

cookie_sec = APIKeyCookie(name="session_id", auto_error=False)

async def get_current_user(
    session_id: Optional[str] = Depends(cookie_sec),
    db: AsyncSession = Depends(get_db)
) -> models.User:
    """Logged in user, 401 otherwise"""
    return await AuthService.get_current_user(db, session_id)

async def get_optional_user(
    session_id: Optional[str] = Depends(cookie_sec),
    db: AsyncSession = Depends(get_db)
) -> Optional[models.User]:
    """Logged in user if there is one. Never raises."""
    if not session_id:
        return None
    try:
        return await AuthService.get_current_user(db, session_id)
    except ExamifyError:
        return None
    except Exception as e:
        logger.warning(f"Ignoring session lookup failure: {str(e)}")
        return None

async def require_instructor(
    user: models.User = Depends(get_current_user)
) -> models.User:
    if not user.is_instructor:
        raise Forbidden("Instructor access required")
    return user
