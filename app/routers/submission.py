from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response, status
from fastapi.responses import RedirectResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict, Optional
from urllib.parse import quote
from datetime import datetime
import logging

from app import models
from app.database import get_db
from app.dependencies import get_blob_store, get_intake_service
from app.services.exam.exam_directory import ExamDirectory
from app.services.storage.blob_store import BlobStore
from app.services.submission.intake_service import DegradeTier, SubmissionIntakeService
from app.services.submission.submission_repository import SubmissionRepository
from app.utils.auth import get_current_user, get_optional_user, require_instructor
from app.schemas.submission import (
    ChunkFinalizeRequest,
    ChunkInitRequest,
    ChunkUploadRequest,
    GradeRequest,
    RetryRequest,
    SingleShotRequest,
    SubmissionDetailResponse,
    SubmissionListResponse
)

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/submissions",
    tags=["submissions"]
)

async def read_payload(request: Request) -> Dict[str, Any]:
    """Request body as a dict; unreadable bodies become an empty payload"""
    try:
        payload = await request.json()
    except Exception as e:
        logger.warning(f"Could not parse emergency payload: {str(e)}")
        return {}
    return payload if isinstance(payload, dict) else {"body": payload}

def client_meta(request: Request) -> Dict[str, Any]:
    return {
        "userAgent": request.headers.get("user-agent"),
        "ipAddress": request.client.host if request.client else None
    }

def content_length(request: Request) -> Optional[int]:
    value = request.headers.get("content-length")
    try:
        return int(value) if value else None
    except ValueError:
        return None

def attachment(file_name: str) -> Dict[str, str]:
    return {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(file_name)}"}

@router.get("/ping")
async def ping():
    return {
        "success": True,
        "message": "Submission service is available",
        "timestamp": datetime.utcnow().isoformat()
    }

@router.post("", status_code=status.HTTP_201_CREATED)
async def submit(
    body: SingleShotRequest,
    request: Request,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    """Single-shot PDF or text-only submission"""
    logger.info(f"Submission request from {user.id} for exam {body.exam_id}")
    return await intake.submit_single_shot(db, user, body, content_length(request))

@router.post("/retry", status_code=status.HTTP_201_CREATED)
async def retry(
    body: RetryRequest,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    """Streamlined re-submit for clients whose regular submit kept failing"""
    logger.info(f"Retry submission from {user.id} for exam {body.exam_id}")
    return await intake.submit_retry(db, user, body)

@router.post("/chunk-init", status_code=status.HTTP_201_CREATED)
async def chunk_init(
    body: ChunkInitRequest,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    return await intake.init_chunked(db, user, body)

@router.post("/chunk")
async def chunk(
    body: ChunkUploadRequest,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    return await intake.receive_chunk(db, user, body)

@router.post("/chunk-finalize")
async def chunk_finalize(
    body: ChunkFinalizeRequest,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    """Reassemble whatever chunks arrived. Answers complete:true on degraded paths too."""
    return await intake.finalize_chunked(db, user, body)

@router.post("/emergency")
async def emergency(
    request: Request,
    background_tasks: BackgroundTasks,
    user: Optional[models.User] = Depends(get_optional_user),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    payload = await read_payload(request)
    return await intake.acknowledge_emergency(
        DegradeTier.EMERGENCY, payload, user, client_meta(request), background_tasks
    )

@router.post("/simplified")
async def simplified(
    request: Request,
    background_tasks: BackgroundTasks,
    user: Optional[models.User] = Depends(get_optional_user),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    payload = await read_payload(request)
    return await intake.acknowledge_emergency(
        DegradeTier.SIMPLIFIED, payload, user, client_meta(request), background_tasks
    )

@router.post("/ultra-simple")
async def ultra_simple(
    request: Request,
    background_tasks: BackgroundTasks,
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    # no session lookup here, this tier must not touch anything it can avoid
    payload = await read_payload(request)
    return await intake.acknowledge_emergency(
        DegradeTier.ULTRA_SIMPLE, payload, None, client_meta(request), background_tasks
    )

@router.get("/check/{exam_id}")
async def check_submission(
    exam_id: str,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    return await intake.check(db, user, exam_id)

@router.get("/file/{submission_id}")
async def get_submission_file(
    submission_id: str,
    user: models.User = Depends(require_instructor),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service),
    blob_store: BlobStore = Depends(get_blob_store)
):
    """Stream the stored file, redirect to the CDN copy, or send the text record"""
    file = await intake.open_file(db, submission_id)
    if file.redirect_url:
        return RedirectResponse(file.redirect_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    if file.blob:
        headers = attachment(file.file_name)
        headers["Content-Length"] = str(file.blob.length)
        return StreamingResponse(
            blob_store.iter_chunks(file.blob.id),
            media_type=file.media_type,
            headers=headers
        )
    return Response(content=file.content, media_type=file.media_type, headers=attachment(file.file_name))

@router.get("/exam/{exam_id}/files", response_model=SubmissionListResponse)
async def get_exam_files(
    exam_id: str,
    user: models.User = Depends(require_instructor),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    await ExamDirectory.require_owned(db, exam_id, user.id)
    files = await intake.list_exam_files(db, exam_id)
    return {"success": True, "message": f"{len(files)} submissions", "data": files}

@router.get("/my-submissions", response_model=SubmissionListResponse)
async def my_submissions(
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    submissions = await SubmissionRepository(db).find_by_student(user.id, limit=10)
    return {"success": True, "data": [submission.to_dict() for submission in submissions]}

@router.get("/student/{student_id}", response_model=SubmissionListResponse)
async def student_submissions(
    student_id: str,
    user: models.User = Depends(require_instructor),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    submissions = await intake.list_student_submissions(db, student_id)
    return {"success": True, "data": submissions}

@router.get("/{submission_id}", response_model=SubmissionDetailResponse)
async def get_submission(
    submission_id: str,
    user: models.User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    submission = await intake.get_submission(db, user, submission_id)
    return {"success": True, "data": submission.to_dict()}

@router.put("/{submission_id}/grade", response_model=SubmissionDetailResponse)
async def grade_submission(
    submission_id: str,
    body: GradeRequest,
    user: models.User = Depends(require_instructor),
    db: AsyncSession = Depends(get_db),
    intake: SubmissionIntakeService = Depends(get_intake_service)
):
    submission = await intake.grade(db, submission_id, body.grade, body.feedback)
    logger.info(f"Submission {submission_id} graded by {user.id}: {body.grade}")
    return {"success": True, "message": "Submission graded", "data": submission.to_dict()}
