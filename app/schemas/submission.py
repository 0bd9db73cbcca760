from pydantic import Field
from typing import Optional, Any, Dict, List
from .base import CamelModel, ResponseBase

class SingleShotRequest(CamelModel):
    exam_id: Optional[str] = None
    student_name: Optional[str] = None
    student_id: Optional[str] = None
    pdf_data: Optional[str] = None
    file_name: Optional[str] = None
    text_only: bool = False
    fallback_reason: Optional[str] = None
    pages_attempted: Optional[Any] = None

class RetryRequest(CamelModel):
    exam_id: Optional[str] = None
    student_name: Optional[str] = None
    pdf_data: Optional[str] = None
    file_name: Optional[str] = None

class ChunkInitRequest(CamelModel):
    exam_id: Optional[str] = None
    total_chunks: Optional[int] = None
    file_name: Optional[str] = None
    student_name: Optional[str] = None
    student_id: Optional[str] = None

class ChunkUploadRequest(CamelModel):
    submission_id: Optional[str] = None
    chunk_index: Optional[int] = None
    total_chunks: Optional[int] = None
    pdf_data: Optional[str] = None
    exam_id: Optional[str] = None
    student_name: Optional[str] = None
    student_id: Optional[str] = None
    attempt: Optional[int] = 0

class ChunkFinalizeRequest(CamelModel):
    submission_id: Optional[str] = None
    exam_id: Optional[str] = None
    total_chunks: Optional[int] = None

class BufferUploadRequest(CamelModel):
    exam_id: Optional[str] = None
    file_name: Optional[str] = None
    pdf_buffer: Optional[Any] = None
    metadata: Optional[Dict[str, Any]] = None

class GradeRequest(CamelModel):
    grade: Optional[float] = Field(default=None, ge=0, le=100)
    feedback: Optional[str] = None

class SubmissionListResponse(ResponseBase[List[Dict[str, Any]]]):
    pass

class SubmissionDetailResponse(ResponseBase[Dict[str, Any]]):
    pass
