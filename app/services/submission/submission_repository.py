import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence

from sqlalchemy import select, update, func, case, literal, String
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.submission import Submission, StorageMode

logger = logging.getLogger(__name__)

class SubmissionRepository:
    """Persistence for Submission records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, **fields: Any) -> Submission:
        submission = Submission(**fields)
        try:
            self.db.add(submission)
            await self.db.commit()
            await self.db.refresh(submission)
            return submission
        except Exception:
            await self.db.rollback()
            raise

    async def get(self, submission_id: str) -> Optional[Submission]:
        return await self.db.get(Submission, submission_id, populate_existing=True)

    async def find_active(self, exam_id: str, student_id: str) -> Optional[Submission]:
        """Newest non-emergency submission for the pair, completed ones first"""
        result = await self.db.execute(
            select(Submission)
            .where(
                Submission.exam_id == exam_id,
                Submission.student_id == student_id,
                Submission.is_emergency.is_(False)
            )
            .order_by(Submission.reassembly_complete.desc(), Submission.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_completed(
        self,
        exam_id: str,
        student_id: str,
        exclude_id: Optional[str] = None
    ) -> Optional[Submission]:
        stmt = select(Submission).where(
            Submission.exam_id == exam_id,
            Submission.student_id == student_id,
            Submission.is_emergency.is_(False),
            Submission.reassembly_complete.is_(True)
        )
        if exclude_id:
            stmt = stmt.where(Submission.id != exclude_id)
        result = await self.db.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def find_by_exam(self, exam_id: str) -> List[Submission]:
        result = await self.db.execute(
            select(Submission)
            .where(Submission.exam_id == exam_id)
            .order_by(Submission.submitted_at.desc())
        )
        return list(result.scalars().all())

    async def find_all_for_exams(self, exam_ids: Sequence[str]) -> List[Submission]:
        if not exam_ids:
            return []
        result = await self.db.execute(
            select(Submission)
            .where(Submission.exam_id.in_(list(exam_ids)))
            .order_by(Submission.submitted_at.desc())
        )
        return list(result.scalars().all())

    async def find_by_student(self, student_id: str, limit: Optional[int] = 10) -> List[Submission]:
        result = await self.db.execute(
            select(Submission)
            .where(Submission.student_id == student_id)
            .order_by(Submission.submitted_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_chunk_received(self, submission_id: str, chunk_index: int) -> Optional[Submission]:
        """
        Flip one bit of the progress bitmap and bump received_count in a single
        UPDATE. Both SET expressions read the pre-update row, so the counter only
        moves when the bit was still '0' and concurrent chunk uploads never lose
        each other's updates.
        """
        position = chunk_index + 1
        progress = Submission.chunk_progress
        try:
            await self.db.execute(
                update(Submission)
                .where(
                    Submission.id == submission_id,
                    Submission.total_chunks > chunk_index
                )
                .values(
                    chunk_progress=(
                        func.substr(progress, 1, chunk_index, type_=String)
                        .concat(literal("1"))
                        .concat(func.substr(progress, position + 1, Submission.total_chunks, type_=String))
                    ),
                    received_count=Submission.received_count + case(
                        (func.substr(progress, position, 1) == "0", 1),
                        else_=0
                    ),
                    is_chunked=True,
                    updated_at=datetime.utcnow()
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                update(Submission)
                .where(
                    Submission.id == submission_id,
                    Submission.received_count >= Submission.total_chunks
                )
                .values(ready_for_reassembly=True)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return await self.get(submission_id)

    async def force_ready(self, submission: Submission, reason: Optional[str] = None) -> Submission:
        """Mark ready for reassembly regardless of completeness"""
        submission.ready_for_reassembly = True
        if reason:
            submission.degraded_reason = reason
        await self._save(submission)
        return submission

    async def complete(
        self,
        submission: Submission,
        storage_mode: StorageMode,
        file_name: Optional[str] = None,
        primary_blob_id: Optional[str] = None,
        external_url: Optional[str] = None,
        external_ref: Optional[str] = None,
        text_only: bool = False,
        degraded_reason: Optional[str] = None
    ) -> Submission:
        """Move a submission into its terminal COMPLETE state"""
        submission.storage_mode = storage_mode.value
        if file_name:
            submission.file_name = file_name
        submission.primary_blob_id = primary_blob_id
        submission.external_url = external_url
        submission.external_ref = external_ref
        submission.text_only = text_only
        if degraded_reason:
            submission.degraded_reason = degraded_reason
        submission.reassembly_complete = True
        await self._save(submission)
        return submission

    async def attach_blob(self, submission_id: str, blob_id: str) -> None:
        """Link a blob stored after the record was created"""
        try:
            await self.db.execute(
                update(Submission)
                .where(Submission.id == submission_id)
                .values(primary_blob_id=blob_id, reassembly_complete=True, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def update_grade(self, submission: Submission, grade: Optional[float], feedback: Optional[str]) -> Submission:
        submission.grade = grade
        submission.feedback = feedback
        submission.graded_at = datetime.utcnow()
        await self._save(submission)
        return submission

    async def find_reassembled_chunked(self, older_than: datetime) -> List[Submission]:
        result = await self.db.execute(
            select(Submission).where(
                Submission.is_chunked.is_(True),
                Submission.reassembly_complete.is_(True),
                Submission.updated_at < older_than
            )
        )
        return list(result.scalars().all())

    async def _save(self, submission: Submission) -> None:
        try:
            self.db.add(submission)
            await self.db.commit()
            await self.db.refresh(submission)
        except Exception:
            await self.db.rollback()
            raise
