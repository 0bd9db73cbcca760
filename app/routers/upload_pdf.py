from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging

from app import models
from app.core.errors import ValidationError
from app.database import get_db
from app.dependencies import get_intake_service
from app.schemas.submission import BufferUploadRequest
from app.services.submission.intake_service import SubmissionIntakeService
from app.utils.auth import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/upload-pdf",
    tags=["upload-pdf"]
)

@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_pdf_file(
    file: Optional[UploadFile] = File(None),
    exam_id: Optional[str] = Form(None, alias="examId"),
    submission_type: Optional[str] = Form(None, alias="submissionType"),
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    """Multipart variant of the CDN upload"""
    if file is None:
        raise ValidationError("No file uploaded")
    if not exam_id:
        raise ValidationError("Missing exam ID")

    data = await file.read()
    logger.info(f"PDF file upload from {user.id} for exam {exam_id}: {file.filename} ({len(data)} bytes)")
    return await intake.submit_external(db, user, BufferUploadRequest(
        exam_id=exam_id,
        file_name=file.filename,
        pdf_buffer=data,
        metadata={"submissionType": submission_type or "standard"}
    ))

@router.post("/buffer")
async def upload_pdf_buffer(
    body: BufferUploadRequest,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    """Upload the PDF bytes straight to the external CDN"""
    logger.info(f"PDF buffer upload from {user.id} for exam {body.exam_id}")
    return await intake.submit_external(db, user, body)

@router.get("/{submission_id}")
async def get_upload_status(
    submission_id: str,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    return await intake.external_status(db, user, submission_id)
