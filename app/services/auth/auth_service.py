from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from app import models
from app.models.user import ROLE_STUDENT, ROLE_INSTRUCTOR
from app.core.errors import Conflict, Forbidden, Unauthorized, ValidationError
from app.utils.session import session_store
from typing import Optional, Dict
import uuid
import logging
from datetime import datetime

logger = logging.getLogger(__name__)

MAX_LOGIN_ATTEMPTS = 5

class AuthService:
    @staticmethod
    async def get_user_by_id(
        db: AsyncSession,
        user_id: str
    ) -> Optional[models.User]:
        stmt = select(models.User).where(models.User.id == user_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def register(
        db: AsyncSession,
        user_id: str,
        password: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        role: str = ROLE_STUDENT
    ) -> models.User:
        """Create a new account"""
        if role not in (ROLE_STUDENT, ROLE_INSTRUCTOR):
            raise ValidationError(f"Unknown role: {role}")
        if await AuthService.get_user_by_id(db, user_id):
            raise Conflict("User already exists")

        user = models.User(id=user_id, name=name, email=email, role=role)
        user.set_password(password)
        try:
            db.add(user)
            await db.commit()
            await db.refresh(user)
        except IntegrityError:
            await db.rollback()
            raise Conflict("User already exists")
        logger.info(f"Registered {role} {user_id}")
        return user

    @staticmethod
    async def authenticate(
        db: AsyncSession,
        user_id: str,
        password: str
    ) -> models.User:
        user = await AuthService.get_user_by_id(db, user_id)
        if not user:
            raise Unauthorized("Invalid credentials")

        if not user.is_active:
            raise Forbidden("Account is disabled")

        if (user.login_attempts or 0) >= MAX_LOGIN_ATTEMPTS:
            raise Forbidden("Too many failed login attempts")

        if user.verify_password(password):
            user.reset_login_attempts()
            user.update_last_login()
            await db.commit()
            return user

        user.increment_login_attempts()
        await db.commit()
        logger.warning(f"Failed login for {user_id} ({user.login_attempts} attempts)")
        raise Unauthorized("Invalid credentials")

    @staticmethod
    async def create_session(user: models.User) -> tuple[str, Dict]:
        session_id = str(uuid.uuid4())
        session_data = {
            "user_id": user.id,
            "role": user.role,
            "created_at": datetime.now().isoformat()
        }
        await session_store.create_session(session_id, session_data)
        return session_id, session_data

    @staticmethod
    async def get_session(session_id: str) -> Optional[Dict]:
        return await session_store.get_session(session_id)

    @staticmethod
    async def delete_session(session_id: Optional[str]) -> None:
        if session_id:
            await session_store.delete_session(session_id)

    @staticmethod
    async def get_current_user(
        db: AsyncSession,
        session_id: Optional[str]
    ) -> models.User:
        """Resolve the logged in user from the session cookie"""
        if not session_id:
            raise Unauthorized("Login required")

        session_data = await AuthService.get_session(session_id)
        if not session_data:
            raise Unauthorized("Session expired")

        user = await AuthService.get_user_by_id(db, session_data["user_id"])
        if not user:
            # stale session for a deleted account
            await AuthService.delete_session(session_id)
            raise Unauthorized("User not found")

        return user

    @staticmethod
    async def login(
        db: AsyncSession,
        user_id: str,
        password: str,
    ) -> tuple[models.User, str]:
        user = await AuthService.authenticate(db, user_id, password)
        session_id, _ = await AuthService.create_session(user)
        return user, session_id
