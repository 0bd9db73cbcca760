from sqlalchemy import Column, Integer, String, DateTime, Boolean, Float, Text, JSON, Index, text
from datetime import datetime
from typing import List
import enum
import uuid
from ..database import Base

class StorageMode(str, enum.Enum):
    CHUNKED_STORE = "chunked-store"
    EXTERNAL_CDN = "external-cdn"
    TEXT_FALLBACK = "text-fallback"

class SubmissionState(str, enum.Enum):
    INIT = "INIT"
    RECEIVING = "RECEIVING"
    READY_FOR_REASSEMBLY = "READY_FOR_REASSEMBLY"
    COMPLETE = "COMPLETE"

def new_id() -> str:
    return uuid.uuid4().hex

class Submission(Base):
    __tablename__ = "submissions"

    id = Column(String(32), primary_key=True, default=new_id)
    exam_id = Column(String, nullable=False, index=True)
    student_id = Column(String, nullable=False, index=True)
    student_name = Column(String, nullable=True)
    file_name = Column(String, nullable=True)

    storage_mode = Column(String, nullable=True)
    primary_blob_id = Column(String(32), nullable=True)
    external_url = Column(String, nullable=True)
    external_ref = Column(String, nullable=True)

    # chunk progress bitmap, one '0'/'1' character per chunk
    is_chunked = Column(Boolean, default=False, nullable=False)
    total_chunks = Column(Integer, default=0, nullable=False)
    chunk_progress = Column(String, default="", nullable=False)
    received_count = Column(Integer, default=0, nullable=False)
    ready_for_reassembly = Column(Boolean, default=False, nullable=False)
    reassembly_complete = Column(Boolean, default=False, nullable=False)

    text_only = Column(Boolean, default=False, nullable=False)
    degraded_reason = Column(Text, nullable=True)
    is_emergency = Column(Boolean, default=False, nullable=False)
    emergency_data = Column(JSON, nullable=True)

    grade = Column(Float, nullable=True)
    feedback = Column(Text, nullable=True)
    submitted_at = Column(DateTime, default=datetime.utcnow)
    graded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index(
            "uq_submission_completed_pair",
            "exam_id",
            "student_id",
            unique=True,
            postgresql_where=text("reassembly_complete = true AND is_emergency = false"),
            sqlite_where=text("reassembly_complete = 1 AND is_emergency = 0"),
        ),
    )

    @property
    def progress(self) -> List[bool]:
        return [flag == "1" for flag in (self.chunk_progress or "")]

    @property
    def state(self) -> SubmissionState:
        if self.reassembly_complete:
            return SubmissionState.COMPLETE
        if self.ready_for_reassembly:
            return SubmissionState.READY_FOR_REASSEMBLY
        if self.is_chunked:
            return SubmissionState.RECEIVING
        return SubmissionState.INIT

    @property
    def status(self) -> str:
        return "graded" if self.grade is not None else "pending"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "examId": self.exam_id,
            "studentId": self.student_id,
            "studentName": self.student_name,
            "fileName": self.file_name,
            "storageMode": self.storage_mode,
            "fileId": self.primary_blob_id,
            "externalUrl": self.external_url,
            "isChunked": self.is_chunked,
            "chunks": {"received": self.received_count, "total": self.total_chunks},
            "readyForReassembly": self.ready_for_reassembly,
            "reassemblyComplete": self.reassembly_complete,
            "state": self.state.value,
            "textOnly": self.text_only,
            "degradedReason": self.degraded_reason,
            "isEmergency": self.is_emergency,
            "grade": self.grade,
            "feedback": self.feedback,
            "status": self.status,
            "submittedAt": self.submitted_at.isoformat() if self.submitted_at else None,
            "gradedAt": self.graded_at.isoformat() if self.graded_at else None
        }
