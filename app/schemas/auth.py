from pydantic import BaseModel
from datetime import datetime
from typing import Optional
from .base import CamelModel

class RegisterRequest(CamelModel):
    user_id: str
    password: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str = "student"

class LoginRequest(CamelModel):
    user_id: str
    password: str

class UserResponse(CamelModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str
    last_login: Optional[datetime] = None
