from datetime import datetime
from typing import Optional
from .base import CamelModel

class ExamCreate(CamelModel):
    title: str
    id: Optional[str] = None
    subject: Optional[str] = None
    duration: Optional[int] = None

class ExamResponse(CamelModel):
    id: str
    title: str
    subject: Optional[str] = None
    duration: Optional[int] = None
    instructor_id: str
    created_at: Optional[datetime] = None
