from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from app import models
from app.core.config import settings
from app.database import get_db
from app.schemas.auth import LoginRequest, RegisterRequest, UserResponse
from app.services.auth.auth_service import AuthService
from app.utils.auth import cookie_sec, get_current_user

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

def set_session_cookie(response: Response, session_id: str):
    response.set_cookie(
        key="session_id",
        value=session_id,
        httponly=True,
        max_age=settings.SESSION_EXPIRE_HOURS * 3600,
        samesite='lax',
        secure=settings.COOKIE_SECURE
    )

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    user = await AuthService.register(
        db,
        user_id=body.user_id,
        password=body.password,
        name=body.name,
        email=body.email,
        role=body.role
    )
    session_id, _ = await AuthService.create_session(user)
    set_session_cookie(response, session_id)
    return {
        "success": True,
        "message": "Registered",
        "data": UserResponse.model_validate(user).model_dump(by_alias=True, mode="json")
    }

@router.post("/login")
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db)
):
    user, session_id = await AuthService.login(db, body.user_id, body.password)
    set_session_cookie(response, session_id)
    logger.info(f"User {user.id} logged in")
    return {
        "success": True,
        "message": "Logged in",
        "data": UserResponse.model_validate(user).model_dump(by_alias=True, mode="json")
    }

@router.post("/logout")
async def logout(
    response: Response,
    session_id: Optional[str] = Depends(cookie_sec)
):
    await AuthService.delete_session(session_id)
    response.delete_cookie(key="session_id")
    return {"success": True, "message": "Logged out"}

@router.get("/me", response_model=UserResponse)
async def me(user: models.User = Depends(get_current_user)):
    return user
