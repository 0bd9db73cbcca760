from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from typing import Iterable, List, Optional
import logging
import uuid

from app import models
from app.core.errors import Conflict, Forbidden, NotFound

logger = logging.getLogger(__name__)

class ExamDirectory:
    """Read side of exam metadata used to scope instructor listings"""

    @staticmethod
    async def get_exam(db: AsyncSession, exam_id: str) -> Optional[models.Exam]:
        return await db.get(models.Exam, exam_id)

    @staticmethod
    async def create_exam(
        db: AsyncSession,
        instructor_id: str,
        title: str,
        exam_id: Optional[str] = None,
        subject: Optional[str] = None,
        duration: Optional[int] = None
    ) -> models.Exam:
        exam = models.Exam(
            id=exam_id or uuid.uuid4().hex,
            title=title,
            subject=subject,
            duration=duration,
            instructor_id=instructor_id
        )
        try:
            db.add(exam)
            await db.commit()
            await db.refresh(exam)
        except IntegrityError:
            await db.rollback()
            raise Conflict(f"Exam {exam.id} already exists")
        logger.info(f"Created exam {exam.id} for instructor {instructor_id}")
        return exam

    @staticmethod
    async def get_exams(db: AsyncSession, exam_ids: Iterable[str]) -> List[models.Exam]:
        exam_ids = list(exam_ids)
        if not exam_ids:
            return []
        result = await db.execute(select(models.Exam).where(models.Exam.id.in_(exam_ids)))
        return list(result.scalars().all())

    @staticmethod
    async def list_for_instructor(db: AsyncSession, instructor_id: str) -> List[models.Exam]:
        result = await db.execute(
            select(models.Exam)
            .where(models.Exam.instructor_id == instructor_id)
            .order_by(models.Exam.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def require_owned(db: AsyncSession, exam_id: str, instructor_id: str) -> models.Exam:
        exam = await ExamDirectory.get_exam(db, exam_id)
        if exam is None:
            raise NotFound("Exam not found")
        if exam.instructor_id != instructor_id:
            raise Forbidden("Not authorized to view submissions for this exam")
        return exam
