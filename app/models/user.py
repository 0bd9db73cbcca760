from sqlalchemy import Column, String, DateTime, Boolean, Integer
from datetime import datetime
from ..database import Base
from ..core.config import settings
from passlib.context import CryptContext

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS
)

ROLE_STUDENT = "student"
ROLE_INSTRUCTOR = "instructor"

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, unique=True, nullable=True)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False, default=ROLE_STUDENT)
    password_hash = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)
    login_attempts = Column(Integer, default=0)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def is_instructor(self) -> bool:
        return self.role == ROLE_INSTRUCTOR

    def set_password(self, password: str):
        """Hash and store the password"""
        if not password:
            raise ValueError("Password is required")
        self.password_hash = pwd_context.hash(password)

    def verify_password(self, password: str) -> bool:
        if not password or not self.password_hash:
            return False
        return pwd_context.verify(password, self.password_hash)

    def increment_login_attempts(self):
        self.login_attempts = (self.login_attempts or 0) + 1

    def reset_login_attempts(self):
        self.login_attempts = 0

    def update_last_login(self):
        self.last_login = datetime.utcnow()
