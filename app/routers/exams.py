from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from app import models
from app.database import get_db
from app.dependencies import get_intake_service
from app.routers.submission import client_meta, read_payload
from app.schemas.exam import ExamCreate, ExamResponse
from app.schemas.submission import SubmissionListResponse
from app.services.exam.exam_directory import ExamDirectory
from app.services.submission.intake_service import DegradeTier, SubmissionIntakeService
from app.services.submission.submission_repository import SubmissionRepository
from app.utils.auth import get_optional_user, require_instructor

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/exams",
    tags=["exams"]
)

@router.post("", response_model=ExamResponse, status_code=status.HTTP_201_CREATED)
async def create_exam(
    body: ExamCreate,
    user: models.User = Depends(require_instructor),
    db: AsyncSession = Depends(get_db)
):
    return await ExamDirectory.create_exam(
        db,
        instructor_id=user.id,
        title=body.title,
        exam_id=body.id,
        subject=body.subject,
        duration=body.duration
    )

@router.get("/submissions", response_model=SubmissionListResponse)
async def instructor_submissions(
    user: models.User = Depends(require_instructor),
    db: AsyncSession = Depends(get_db)
):
    """Every submission across the caller's exams"""
    exams = await ExamDirectory.list_for_instructor(db, user.id)
    submissions = await SubmissionRepository(db).find_all_for_exams([exam.id for exam in exams])
    return {"success": True, "data": [submission.to_dict() for submission in submissions]}

@router.post("/submit")
async def submit_exam(
    request: Request,
    background_tasks: BackgroundTasks,
    user: Optional[models.User] = Depends(get_optional_user),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    """Exam-level emergency submission, always acknowledged"""
    payload = await read_payload(request)
    return await intake.acknowledge_emergency(
        DegradeTier.EXAM_SUBMIT, payload, user, client_meta(request), background_tasks
    )
