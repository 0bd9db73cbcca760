from sqlalchemy import Column, String, DateTime, Integer
from datetime import datetime
from ..database import Base

class Exam(Base):
    __tablename__ = "exams"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    subject = Column(String, nullable=True)
    duration = Column(Integer, nullable=True)
    instructor_id = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
