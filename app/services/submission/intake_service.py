import asyncio
import enum
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from fastapi import BackgroundTasks
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings
from app.core.errors import (
    Conflict,
    ExamifyError,
    Forbidden,
    NotFound,
    PayloadTooLarge,
    ReassemblyImpossible,
    RequestTimeout,
    ValidationError,
)
from app.models.blob import StoredBlob
from app.models.submission import Submission, StorageMode
from app.models.user import User
from app.schemas.submission import (
    BufferUploadRequest,
    ChunkFinalizeRequest,
    ChunkInitRequest,
    ChunkUploadRequest,
    RetryRequest,
    SingleShotRequest,
)
from app.services.exam.exam_directory import ExamDirectory
from app.services.storage.blob_store import BlobInfo, BlobStore
from app.services.storage.external_cdn import ExternalCdnClient
from app.services.storage.reassembly import ChunkReassembler
from app.services.submission import records
from app.services.submission.submission_repository import SubmissionRepository
from app.utils.file_utils import (
    coerce_byte_buffer,
    decode_base64,
    decode_chunk_data,
    decode_pdf_data_uri,
    safe_file_name,
    safe_name,
    strip_data_uri,
    timestamp_ms,
)

logger = logging.getLogger(__name__)

# Ordered ways of finding a stored chunk; metadata types drifted across client versions.
ChunkLookup = Callable[[str, int], list]
CHUNK_LOOKUP_STRATEGIES: Tuple[Tuple[str, ChunkLookup], ...] = (
    ("string index", lambda sid, i: [
        StoredBlob.meta_text("submissionId") == sid,
        StoredBlob.meta_text("chunkIndex") == str(i),
    ]),
    ("numeric index", lambda sid, i: [
        StoredBlob.meta_text("submissionId") == sid,
        StoredBlob.meta_int("chunkIndex") == i,
    ]),
    ("filename pattern", lambda sid, i: [
        StoredBlob.filename.like(f"%/_chunk/_{sid}/_{i}/_of/_%", escape="/"),
    ]),
)

HEAVY_FIELDS = ("imageData", "pdfData", "screenshot")

class DegradeTier(str, enum.Enum):
    EMERGENCY = "emergency"
    SIMPLIFIED = "simplified"
    ULTRA_SIMPLE = "ultra-simple"
    EXAM_SUBMIT = "exam-submit"

@dataclass(frozen=True)
class TierPolicy:
    requires_exam_id: bool
    persist_after_response: bool
    store_blob: bool
    fallback_reason: str
    default_file_name: Optional[str] = None

TIER_POLICIES: Dict[DegradeTier, TierPolicy] = {
    DegradeTier.EMERGENCY: TierPolicy(
        requires_exam_id=True,
        persist_after_response=False,
        store_blob=True,
        fallback_reason="Emergency text submission",
        default_file_name="emergency_submission.txt",
    ),
    DegradeTier.SIMPLIFIED: TierPolicy(
        requires_exam_id=True,
        persist_after_response=False,
        store_blob=False,
        fallback_reason="Simplified text-only submission",
    ),
    DegradeTier.ULTRA_SIMPLE: TierPolicy(
        requires_exam_id=False,
        persist_after_response=True,
        store_blob=False,
        fallback_reason="Ultra-simple emergency submission",
    ),
    DegradeTier.EXAM_SUBMIT: TierPolicy(
        requires_exam_id=True,
        persist_after_response=False,
        store_blob=False,
        fallback_reason="Emergency submission via exams/submit endpoint",
    ),
}

@dataclass
class SubmissionFile:
    """What GET /submissions/file/{id} should send back"""
    file_name: str
    redirect_url: Optional[str] = None
    blob: Optional[BlobInfo] = None
    content: Optional[bytes] = None
    media_type: str = "application/pdf"

def _display_name(user: Optional[User], fallback: Optional[str] = None) -> str:
    if user is not None and user.name:
        return user.name
    return fallback or (user.id if user is not None else "unknown")

def _emergency_reason(tier: DegradeTier, payload: Dict[str, Any], policy: TierPolicy) -> str:
    if payload.get("errorStatus"):
        return str(payload["errorStatus"])
    if tier == DegradeTier.EMERGENCY:
        if payload.get("forcedComplete"):
            return "Forced complete emergency submission"
        if payload.get("autoFallback"):
            return "Auto fallback emergency submission"
    return policy.fallback_reason

def _log_view(data: Dict[str, Any]) -> Dict[str, Any]:
    view = {}
    for key, value in data.items():
        if key in HEAVY_FIELDS and isinstance(value, str):
            view[key] = f"<{round(len(value) / 1024)}KB>"
        else:
            view[key] = value
    return view

class SubmissionIntakeService:
    """
    Drives a submission from INIT to COMPLETE through one of the intake modes:
    single-shot, chunked (init / chunk / finalize), external CDN, or one of the
    always-acknowledging degrade-ladder tiers.
    """

    def __init__(
        self,
        settings: Settings,
        blob_store: BlobStore,
        reassembler: ChunkReassembler,
        cdn: ExternalCdnClient,
        session_maker: async_sessionmaker
    ):
        self.settings = settings
        self.blob_store = blob_store
        self.reassembler = reassembler
        self.cdn = cdn
        self.session_maker = session_maker

    # ------------------------------------------------------------------
    # single-shot
    # ------------------------------------------------------------------

    async def submit_single_shot(
        self,
        db: AsyncSession,
        user: User,
        request: SingleShotRequest,
        content_length: Optional[int] = None
    ) -> Dict[str, Any]:
        if not request.exam_id:
            raise ValidationError("Missing exam ID")
        if not request.text_only and not request.student_name:
            raise ValidationError("Missing student name")

        repo = SubmissionRepository(db)
        exam_id = request.exam_id
        student_name = request.student_name or _display_name(user)

        if await repo.find_completed(exam_id, user.id):
            logger.info(f"Student {user.id} has already submitted exam {exam_id}")
            raise Conflict("You have already submitted this exam")

        if request.text_only:
            return await self._submit_text_only(repo, user, request, student_name)

        if not request.pdf_data:
            raise ValidationError("Missing PDF data")
        if content_length and content_length > self.settings.MAX_SUBMISSION_BYTES:
            logger.error(f"Request too large: {content_length}")
            raise PayloadTooLarge()

        pdf = decode_pdf_data_uri(request.pdf_data)
        if len(pdf) > self.settings.MAX_SUBMISSION_BYTES:
            raise PayloadTooLarge()
        logger.info(f"PDF buffer size: {round(len(pdf) / 1024)}KB")

        if request.file_name:
            filename = safe_file_name(request.file_name)
        else:
            student_part = f"_{request.student_id}" if request.student_id else ""
            filename = f"{safe_name(student_name)}{student_part}_exam_{exam_id}_{timestamp_ms()}.pdf"

        blob_id = await self.blob_store.put(pdf, filename, {
            "examId": exam_id,
            "studentId": user.id,
            "studentName": student_name,
            "clientStudentId": request.student_id,
            "submissionDate": datetime.utcnow(),
            "whiteboardData": True
        })

        submission = await self._create_complete(
            repo,
            blob_id,
            exam_id=exam_id,
            student_id=user.id,
            student_name=student_name,
            file_name=filename,
            storage_mode=StorageMode.CHUNKED_STORE.value,
            primary_blob_id=blob_id,
            submitted_at=datetime.utcnow()
        )
        logger.info(f"Submission created successfully: {submission.id}")
        return {
            "success": True,
            "message": "Exam submitted successfully!",
            "submissionId": submission.id,
            "storageMode": submission.storage_mode,
            "fileName": filename,
            "complete": True
        }

    async def _submit_text_only(
        self,
        repo: SubmissionRepository,
        user: User,
        request: SingleShotRequest,
        student_name: str
    ) -> Dict[str, Any]:
        logger.info(f"Processing text-only submission for exam {request.exam_id}")
        reason = request.fallback_reason or "PDF submission failed"
        filename = f"{safe_name(student_name)}_exam_{request.exam_id}_TEXT_ONLY_{timestamp_ms()}.txt"
        blob_id = await self.blob_store.put(
            records.text_only_record(student_name, request.exam_id, reason, request.pages_attempted),
            filename,
            {
                "examId": request.exam_id,
                "studentId": user.id,
                "studentName": student_name,
                "submissionDate": datetime.utcnow(),
                "isTextOnly": True,
                "contentType": "text/plain"
            }
        )
        submission = await self._create_complete(
            repo,
            blob_id,
            exam_id=request.exam_id,
            student_id=user.id,
            student_name=student_name,
            file_name=filename,
            storage_mode=StorageMode.TEXT_FALLBACK.value,
            primary_blob_id=blob_id,
            text_only=True,
            degraded_reason=reason,
            submitted_at=datetime.utcnow()
        )
        logger.info(f"Text-only submission created successfully: {submission.id}")
        return {
            "success": True,
            "message": "Text-only submission recorded successfully. Please contact your instructor.",
            "submissionId": submission.id,
            "storageMode": submission.storage_mode,
            "textOnly": True,
            "complete": True
        }

    async def submit_retry(self, db: AsyncSession, user: User, request: RetryRequest) -> Dict[str, Any]:
        """Streamlined re-submit: minimal validation, minimal blob metadata"""
        if not request.exam_id or not request.pdf_data:
            raise ValidationError("Missing required fields")

        repo = SubmissionRepository(db)
        if await repo.find_completed(request.exam_id, user.id):
            logger.info(f"Retry from {user.id} for exam {request.exam_id} rejected, already submitted")
            raise Conflict("You have already submitted this exam")

        pdf = decode_base64(strip_data_uri(request.pdf_data))
        if len(pdf) > self.settings.MAX_SUBMISSION_BYTES:
            raise PayloadTooLarge()

        student_name = request.student_name or _display_name(user)
        if request.file_name:
            filename = safe_file_name(request.file_name)
        else:
            filename = f"{safe_name(student_name)}_exam_{request.exam_id}_retry_{timestamp_ms()}.pdf"

        blob_id = await self.blob_store.put(pdf, filename, {
            "examId": request.exam_id,
            "studentId": user.id,
            "isRetry": True
        })
        submission = await self._create_complete(
            repo,
            blob_id,
            exam_id=request.exam_id,
            student_id=user.id,
            student_name=student_name,
            file_name=filename,
            storage_mode=StorageMode.CHUNKED_STORE.value,
            primary_blob_id=blob_id,
            submitted_at=datetime.utcnow()
        )
        logger.info(f"Retry submission successful: {submission.id}")
        return {
            "success": True,
            "message": "Exam retry submitted successfully!",
            "submissionId": submission.id,
            "storageMode": submission.storage_mode,
            "fileName": filename,
            "complete": True
        }

    async def _create_complete(self, repo: SubmissionRepository, blob_id: Optional[str], **fields: Any) -> Submission:
        """Create a COMPLETE record; the stored blob is dropped again if the record cannot be written"""
        try:
            return await repo.create(reassembly_complete=True, **fields)
        except IntegrityError:
            logger.warning(f"Duplicate completed submission for exam {fields.get('exam_id')} / {fields.get('student_id')}")
            if blob_id:
                await self.blob_store.delete(blob_id)
            raise Conflict("You have already submitted this exam")
        except Exception as e:
            logger.error(f"Database error while creating submission: {str(e)}")
            if blob_id:
                await self.blob_store.delete(blob_id)
            raise ExamifyError(f"Failed to record submission: {str(e)}")

    # ------------------------------------------------------------------
    # chunked
    # ------------------------------------------------------------------

    async def init_chunked(self, db: AsyncSession, user: User, request: ChunkInitRequest) -> Dict[str, Any]:
        if not request.exam_id:
            raise ValidationError("Missing exam ID")
        if not request.total_chunks or request.total_chunks <= 0:
            raise ValidationError("Invalid chunk count")

        repo = SubmissionRepository(db)
        if await repo.find_completed(request.exam_id, user.id):
            logger.info(f"Student {user.id} has already submitted exam {request.exam_id}")
            raise Conflict("You have already submitted this exam")

        student_name = request.student_name or _display_name(user)
        submission = await repo.create(
            exam_id=request.exam_id,
            student_id=user.id,
            student_name=student_name,
            is_chunked=True,
            total_chunks=request.total_chunks,
            chunk_progress="0" * request.total_chunks,
            received_count=0,
            submitted_at=datetime.utcnow(),
            file_name=safe_file_name(request.file_name) if request.file_name else f"{safe_name(student_name)}_exam_{request.exam_id}_chunks.pdf"
        )
        logger.info(f"Initialized chunked submission: {submission.id} with {request.total_chunks} expected chunks")
        return {
            "success": True,
            "submissionId": submission.id,
            "message": f"Chunked upload initialized with {request.total_chunks} expected chunks",
            "total": request.total_chunks
        }

    async def _owned_submission(self, repo: SubmissionRepository, user: User, submission_id: str, action: str) -> Submission:
        submission = await repo.get(submission_id)
        if submission is None:
            raise NotFound("Submission not found")
        if submission.student_id != user.id:
            raise Forbidden(f"Not authorized to {action} this submission")
        return submission

    async def receive_chunk(self, db: AsyncSession, user: User, request: ChunkUploadRequest) -> Dict[str, Any]:
        if not request.submission_id:
            raise ValidationError("Missing submission ID")
        if not request.pdf_data:
            raise ValidationError("Missing chunk data")
        if request.chunk_index is None or request.total_chunks is None:
            raise ValidationError("Missing chunk information")

        repo = SubmissionRepository(db)
        submission = await repo.get(request.submission_id)
        if submission is None:
            raise NotFound("Submission not found. Please initialize chunked upload first with /chunk-init endpoint.")
        if submission.student_id != user.id:
            raise Forbidden("Not authorized to update this submission")
        if submission.reassembly_complete:
            raise Conflict("Submission has already been finalized")

        index = request.chunk_index
        total = submission.total_chunks
        if index < 0 or index >= total:
            raise ValidationError(f"Chunk index {index} out of range for {total} chunks")
        if request.total_chunks != total:
            logger.warning(f"Chunk total mismatch for {submission.id}: client says {request.total_chunks}, record has {total}")

        chunk = decode_chunk_data(request.pdf_data)
        student_label = safe_name(request.student_name, max_length=30)
        chunk_filename = f"{student_label}_chunk_{submission.id}_{index}_of_{total}.bin"
        logger.info(f"Storing chunk {index + 1}/{total}, size: {round(len(chunk) / 1024)}KB")

        await self.blob_store.put(chunk, chunk_filename, {
            "submissionId": submission.id,
            "chunkIndex": index,
            "totalChunks": total,
            "userId": user.id,
            "studentName": request.student_name or "unknown",
            "studentId": request.student_id or user.id,
            "examId": request.exam_id or submission.exam_id,
            "isWhiteboardChunk": True,
            "attempt": request.attempt or 0,
            "contentType": "application/octet-stream"
        })

        updated = await repo.mark_chunk_received(submission.id, index)
        complete = updated.received_count >= updated.total_chunks
        if complete:
            logger.info(f"All {total} chunks received for submission {submission.id}, ready for reassembly")
        return {
            "success": True,
            "message": f"Chunk {index + 1} of {total} received",
            "received": updated.received_count,
            "total": updated.total_chunks,
            "complete": complete
        }

    async def _locate_chunks(self, submission_id: str, progress: Sequence[bool]) -> Tuple[List[str], bool]:
        """Resolve the stored blob id of every received chunk, in index order"""
        chunk_ids: List[str] = []
        missing = False
        for index, received in enumerate(progress):
            if not received:
                logger.warning(f"Chunk {index} marked as not received in submission status")
                missing = True
                continue
            blob_id = None
            for name, criteria in CHUNK_LOOKUP_STRATEGIES:
                try:
                    found = await self.blob_store.find(*criteria(submission_id, index), limit=1)
                except Exception as e:
                    logger.error(f"Chunk lookup ({name}) failed for chunk {index} of {submission_id}: {str(e)}")
                    continue
                if found:
                    blob_id = found[0].id
                    break
            if blob_id:
                chunk_ids.append(blob_id)
            else:
                logger.warning(f"Could not find chunk file for submission {submission_id}, chunk {index} after multiple search strategies")
                missing = True
        return chunk_ids, missing

    async def finalize_chunked(self, db: AsyncSession, user: User, request: ChunkFinalizeRequest) -> Dict[str, Any]:
        if not request.submission_id:
            raise ValidationError("Missing submission ID")

        repo = SubmissionRepository(db)
        submission = await self._owned_submission(repo, user, request.submission_id, "finalize")

        if submission.reassembly_complete:
            return {
                "success": True,
                "message": "Submission already finalized",
                "submissionId": submission.id,
                "fileName": submission.file_name,
                "storageMode": submission.storage_mode,
                "textOnly": submission.text_only,
                "degradedReason": submission.degraded_reason,
                "complete": True
            }
        if not submission.is_chunked:
            raise ValidationError("Submission is not a chunked upload")
        if await repo.find_completed(submission.exam_id, user.id, exclude_id=submission.id):
            raise Conflict("You have already submitted this exam")

        # snapshot; chunks still in flight are not waited for
        progress = submission.progress
        total = submission.total_chunks
        received = sum(progress)
        shortfall = None
        if received < total:
            shortfall = f"Finalized with {received}/{total} chunks received"
            logger.info(f"Finalizing incomplete submission: {received}/{total} chunks received")
        await repo.force_ready(submission, shortfall)

        chunk_ids, missing = await self._locate_chunks(submission.id, progress)
        found = len(chunk_ids)
        logger.info(f"Found {found} valid chunk files for reassembly out of {total} total chunks")
        if found == 0:
            raise ReassemblyImpossible("No valid chunk files found for reassembly")

        exam_id = request.exam_id or submission.exam_id
        student_name = _display_name(user, submission.student_name)
        final_name = submission.file_name or f"{safe_name(student_name)}_exam_{exam_id}_reassembled.pdf"
        base_metadata = {
            "examId": exam_id,
            "studentId": user.id,
            "studentName": student_name,
            "submissionId": submission.id
        }

        # inclusive: exactly 80% found (20% missing) is already text-fallback
        if missing and found / total <= self.settings.PARTIAL_REASSEMBLY_THRESHOLD:
            logger.info(f"Missing significant chunk data ({found}/{total}). Creating text-only record as fallback")
            fallback_name = f"{safe_name(student_name)}_exam_{exam_id}_PARTIAL_{timestamp_ms()}.txt"
            try:
                blob_id = await self.blob_store.put(
                    records.partial_record(student_name, exam_id, submission.id, found, total),
                    fallback_name,
                    {**base_metadata, "isPartialRecovery": True, "contentType": "text/plain"}
                )
                reason = f"Partial chunks ({found}/{total}) recovered"
                await self._complete(
                    repo, submission, StorageMode.TEXT_FALLBACK,
                    file_name=fallback_name, primary_blob_id=blob_id, text_only=True, degraded_reason=reason
                )
                return {
                    "success": True,
                    "warning": "Some chunks were missing. Created text-only record.",
                    "submissionId": submission.id,
                    "fileName": fallback_name,
                    "storageMode": StorageMode.TEXT_FALLBACK.value,
                    "degradedReason": reason,
                    "complete": True,
                    "chunksReceived": found,
                    "chunksTotal": total,
                    "textOnly": True
                }
            except Conflict:
                raise
            except Exception as e:
                # fall through and reassemble whatever arrived
                logger.error(f"Failed to create fallback text record: {str(e)}")

        try:
            result = await self.reassembler.reassemble(
                chunk_ids,
                final_name,
                {**base_metadata, "chunksFound": found, "chunksExpected": total, "isPartial": missing}
            )
        except ReassemblyImpossible:
            raise
        except Exception as e:
            logger.error(f"Reassembly failed: {str(e)}")
            return await self._record_reassembly_failure(repo, submission, user, exam_id, found, e)

        logger.info(f"Reassembled PDF of size {result.byte_size} bytes with file ID {result.blob_id} from {result.chunks_used} chunks")
        degraded = None
        if missing or result.chunks_used < total:
            degraded = f"Reassembled with partial data ({result.chunks_used}/{total} chunks)"
        await self._complete(
            repo, submission, StorageMode.CHUNKED_STORE,
            file_name=final_name, primary_blob_id=result.blob_id, degraded_reason=degraded
        )
        return {
            "success": True,
            "message": f"Chunked upload finalized with {received}/{total} chunks received",
            "submissionId": submission.id,
            "fileName": final_name,
            "storageMode": StorageMode.CHUNKED_STORE.value,
            "byteSize": result.byte_size,
            "chunksUsed": result.chunks_used,
            "chunksTotal": total,
            "degradedReason": degraded,
            "textOnly": False,
            "complete": True
        }

    async def _record_reassembly_failure(
        self,
        repo: SubmissionRepository,
        submission: Submission,
        user: User,
        exam_id: str,
        found: int,
        error: Exception
    ) -> Dict[str, Any]:
        student_name = _display_name(user, submission.student_name)
        emergency_name = f"{safe_name(student_name)}_exam_{exam_id}_EMERGENCY_{timestamp_ms()}.txt"
        try:
            blob_id = await self.blob_store.put(
                records.reassembly_failed_record(
                    student_name, exam_id, submission.id, found, submission.total_chunks, str(error)
                ),
                emergency_name,
                {
                    "examId": exam_id,
                    "studentId": user.id,
                    "studentName": student_name,
                    "submissionId": submission.id,
                    "isEmergencyRecord": True,
                    "contentType": "text/plain"
                }
            )
            reason = f"Reassembly failed: {str(error)}"
            await self._complete(
                repo, submission, StorageMode.TEXT_FALLBACK,
                file_name=emergency_name, primary_blob_id=blob_id, text_only=True, degraded_reason=reason
            )
        except Conflict:
            raise
        except Exception as emergency_error:
            logger.error(f"Failed to create emergency reassembly record: {str(emergency_error)}")
            raise ExamifyError(f"Failed to reassemble chunks: {str(error)}")

        return {
            "success": True,
            "warning": "Reassembly failed. Created emergency record.",
            "submissionId": submission.id,
            "fileName": emergency_name,
            "storageMode": StorageMode.TEXT_FALLBACK.value,
            "degradedReason": reason,
            "complete": True,
            "textOnly": True,
            "error": str(error)
        }

    async def _complete(self, repo: SubmissionRepository, submission: Submission, mode: StorageMode, **fields: Any) -> Submission:
        try:
            return await repo.complete(submission, mode, **fields)
        except IntegrityError:
            raise Conflict("You have already submitted this exam")

    # ------------------------------------------------------------------
    # external CDN
    # ------------------------------------------------------------------

    async def submit_external(self, db: AsyncSession, user: User, request: BufferUploadRequest) -> Dict[str, Any]:
        if not request.exam_id:
            raise ValidationError("Missing exam ID")
        if request.pdf_buffer is None:
            raise ValidationError("Missing PDF buffer")

        buffer = coerce_byte_buffer(request.pdf_buffer)
        if len(buffer) > self.settings.MAX_SUBMISSION_BYTES:
            raise PayloadTooLarge()
        logger.info(f"PDF buffer size: {len(buffer)} bytes")

        repo = SubmissionRepository(db)
        if await repo.find_completed(request.exam_id, user.id):
            raise Conflict("You have already submitted this exam")

        extra = dict(request.metadata or {})
        file_name = request.file_name or f"submission_{request.exam_id}_{timestamp_ms()}.pdf"
        upload_metadata = {
            "userId": user.id,
            "userName": user.name or "Unknown User",
            "examId": request.exam_id,
            "timestamp": datetime.utcnow().isoformat(),
            "contentLength": len(buffer),
            **extra
        }

        try:
            result = await asyncio.wait_for(
                self.cdn.upload(buffer, file_name, upload_metadata),
                timeout=self.settings.CDN_UPLOAD_TIMEOUT
            )
        except asyncio.TimeoutError:
            logger.error(f"PDF buffer upload timeout exceeded ({self.settings.CDN_UPLOAD_TIMEOUT:g}s)")
            raise RequestTimeout()

        submission = await self._create_complete(
            repo,
            None,
            exam_id=request.exam_id,
            student_id=user.id,
            student_name=extra.get("studentName") or _display_name(user),
            file_name=file_name,
            storage_mode=StorageMode.EXTERNAL_CDN.value,
            external_url=result.url,
            external_ref=result.ref,
            submitted_at=datetime.utcnow()
        )
        return {
            "success": True,
            "submission": {
                "id": submission.id,
                "fileName": submission.file_name,
                "externalUrl": result.url,
                "externalRef": result.ref,
                "bytes": result.bytes,
                "submittedAt": submission.submitted_at.isoformat()
            }
        }

    async def external_status(self, db: AsyncSession, user: User, submission_id: str) -> Dict[str, Any]:
        submission = await self._owned_submission(SubmissionRepository(db), user, submission_id, "view")
        return {
            "success": True,
            "submission": {
                "id": submission.id,
                "fileName": submission.file_name,
                "externalUrl": submission.external_url,
                "submittedAt": submission.submitted_at.isoformat() if submission.submitted_at else None,
                "storageMode": submission.storage_mode
            }
        }

    # ------------------------------------------------------------------
    # degrade ladder
    # ------------------------------------------------------------------

    async def acknowledge_emergency(
        self,
        tier: DegradeTier,
        payload: Dict[str, Any],
        user: Optional[User],
        client_meta: Dict[str, Any],
        background_tasks: BackgroundTasks
    ) -> Dict[str, Any]:
        """
        Log first, persist best-effort, always acknowledge. Only a missing exam
        id on tiers that need one is reported back as an error.
        """
        policy = TIER_POLICIES[tier]
        exam_id = payload.get("examId")
        exam_id = str(exam_id) if exam_id not in (None, "") else None
        if not exam_id and policy.requires_exam_id:
            raise ValidationError("Missing exam ID")

        timestamp = datetime.utcnow()
        try:
            student_id = user.id if user is not None else str(payload.get("studentId") or "emergency-user")
            student_name = str(payload.get("studentName") or (user.name if user is not None else None) or "unknown")
            data = {
                **payload,
                "examId": exam_id or "unknown",
                "studentId": payload.get("studentId") or student_id,
                "studentName": student_name,
                "tier": tier.value,
                "submittedAt": timestamp.isoformat(),
                **client_meta
            }
            logger.warning(f"EMERGENCY SUBMISSION DATA ({tier.value}): {json.dumps(_log_view(data), default=str)}")

            fields = {
                "exam_id": exam_id or "unknown",
                "student_id": student_id,
                "student_name": student_name,
                "file_name": payload.get("fileName") or policy.default_file_name,
                "storage_mode": StorageMode.TEXT_FALLBACK.value,
                "text_only": True,
                "is_emergency": True,
                "degraded_reason": _emergency_reason(tier, payload, policy),
                "emergency_data": data,
                "submitted_at": timestamp
            }

            if policy.persist_after_response:
                background_tasks.add_task(self._persist_emergency_quietly, fields)
                return {
                    "success": True,
                    "message": "Emergency data received and logged",
                    "recorded": None,
                    "timestamp": timestamp.isoformat()
                }

            submission_id = await self._persist_emergency(fields)
            if policy.store_blob:
                background_tasks.add_task(self._store_emergency_blob, submission_id, data, fields["file_name"])
            return {
                "success": True,
                "message": f"{tier.value.replace('-', ' ').capitalize()} submission recorded",
                "submissionId": submission_id,
                "recorded": True,
                "timestamp": timestamp.isoformat()
            }
        except Exception as e:
            logger.error(f"Emergency submission ({tier.value}) could not be persisted: {str(e)}", exc_info=True)
            return {
                "success": True,
                "message": "Emergency data logged but record creation failed",
                "recorded": False,
                "error": str(e),
                "timestamp": timestamp.isoformat()
            }

    async def _persist_emergency(self, fields: Dict[str, Any]) -> str:
        async def _write() -> str:
            async with self.session_maker() as session:
                submission = await SubmissionRepository(session).create(**fields)
                return submission.id

        submission_id = await asyncio.wait_for(_write(), timeout=self.settings.BLOB_EMERGENCY_WRITE_TIMEOUT)
        logger.info(f"Emergency submission record created: {submission_id}")
        return submission_id

    async def _persist_emergency_quietly(self, fields: Dict[str, Any]) -> None:
        try:
            await self._persist_emergency(fields)
        except Exception as e:
            logger.error(f"Failed to create database record for emergency submission: {str(e)}")

    async def _store_emergency_blob(self, submission_id: str, data: Dict[str, Any], file_name: str) -> None:
        try:
            blob_id = await self.blob_store.put(records.emergency_record(data), file_name, {
                "examId": data.get("examId"),
                "studentId": data.get("studentId"),
                "studentName": data.get("studentName"),
                "submissionId": submission_id,
                "submissionDate": datetime.utcnow(),
                "isEmergencySubmission": True,
                "contentType": "text/plain"
            })
            async with self.session_maker() as session:
                await SubmissionRepository(session).attach_blob(submission_id, blob_id)
        except Exception as e:
            logger.error(f"Background blob storage failed for emergency submission {submission_id}: {str(e)}")

    # ------------------------------------------------------------------
    # lookups, grading, files
    # ------------------------------------------------------------------

    async def check(self, db: AsyncSession, user: User, exam_id: str) -> Dict[str, Any]:
        active = await SubmissionRepository(db).find_active(exam_id, user.id)
        if active is not None and active.reassembly_complete:
            return {
                "success": True,
                "hasSubmission": True,
                "submissionId": active.id,
                "submittedAt": active.submitted_at.isoformat() if active.submitted_at else None
            }
        response = {"success": True, "hasSubmission": False}
        if active is not None:
            response["pendingSubmissionId"] = active.id
            response["state"] = active.state.value
        return response

    async def get_submission(self, db: AsyncSession, user: User, submission_id: str) -> Submission:
        submission = await SubmissionRepository(db).get(submission_id)
        if submission is None:
            raise NotFound("Submission not found")
        if not user.is_instructor and submission.student_id != user.id:
            raise Forbidden("Not authorized to view this submission")
        return submission

    async def grade(self, db: AsyncSession, submission_id: str, grade: Optional[float], feedback: Optional[str]) -> Submission:
        repo = SubmissionRepository(db)
        submission = await repo.get(submission_id)
        if submission is None:
            raise NotFound("Submission not found")
        return await repo.update_grade(submission, grade, feedback)

    async def open_file(self, db: AsyncSession, submission_id: str) -> SubmissionFile:
        submission = await SubmissionRepository(db).get(submission_id)
        if submission is None:
            raise NotFound("Submission not found")

        if submission.storage_mode == StorageMode.EXTERNAL_CDN.value and submission.external_url:
            return SubmissionFile(file_name=submission.file_name or "submission.pdf", redirect_url=submission.external_url)
        if submission.primary_blob_id:
            blob = await self.blob_store.info(submission.primary_blob_id)
            return SubmissionFile(
                file_name=submission.file_name or blob.filename or "submission.pdf",
                blob=blob,
                media_type=blob.content_type or "application/pdf"
            )
        if submission.text_only or submission.emergency_data:
            if submission.emergency_data:
                content = records.emergency_record(submission.emergency_data)
            else:
                content = (submission.degraded_reason or "Text-only submission").encode("utf-8")
            return SubmissionFile(
                file_name=submission.file_name or "submission.txt",
                content=content,
                media_type="text/plain"
            )
        raise ValidationError("No valid file data found for this submission")

    async def list_exam_files(self, db: AsyncSession, exam_id: str) -> List[Dict[str, Any]]:
        submissions = await SubmissionRepository(db).find_by_exam(exam_id)
        blobs = {blob.id: blob for blob in await self.blob_store.list_by_metadata({"examId": exam_id})}
        items = []
        for submission in submissions:
            blob = blobs.get(submission.primary_blob_id) if submission.primary_blob_id else None
            item = submission.to_dict()
            item["fileSize"] = blob.length if blob else None
            item["uploadDate"] = blob.upload_date.isoformat() if blob and blob.upload_date else None
            items.append(item)
        return items

    async def list_student_submissions(self, db: AsyncSession, student_id: str) -> List[Dict[str, Any]]:
        """All of one student's submissions, newest first, with the exam summary attached"""
        submissions = await SubmissionRepository(db).find_by_student(student_id, limit=None)
        exam_ids = {submission.exam_id for submission in submissions}
        exams = {exam.id: exam for exam in await ExamDirectory.get_exams(db, exam_ids)}

        items = []
        for submission in submissions:
            exam = exams.get(submission.exam_id)
            item = submission.to_dict()
            item["exam"] = {
                "id": exam.id,
                "title": exam.title,
                "subject": exam.subject,
                "duration": exam.duration
            } if exam else None
            items.append(item)
        return items

    async def sweep_orphaned_chunks(self, older_than: datetime) -> int:
        """Delete chunk blobs of chunked submissions that finished reassembly before `older_than`"""
        async with self.session_maker() as session:
            finished = await SubmissionRepository(session).find_reassembled_chunked(older_than)

        deleted = 0
        for submission in finished:
            chunks = await self.blob_store.list_by_metadata({
                "submissionId": submission.id,
                "isWhiteboardChunk": True
            })
            for chunk in chunks:
                if chunk.id == submission.primary_blob_id:
                    continue
                if await self.blob_store.delete(chunk.id):
                    deleted += 1
        if deleted:
            logger.info(f"Swept {deleted} orphaned chunk blobs")
        return deleted
