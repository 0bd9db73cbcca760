import asyncio

import pytest
from sqlalchemy.exc import IntegrityError

from app.models.submission import StorageMode, SubmissionState
from app.services.submission.submission_repository import SubmissionRepository


async def create_chunked(db, total):
    return await SubmissionRepository(db).create(
        exam_id="exam-1",
        student_id="alice",
        student_name="Alice",
        is_chunked=True,
        total_chunks=total,
        chunk_progress="0" * total,
    )


async def test_mark_chunk_received_flips_one_bit(db):
    submission = await create_chunked(db, 4)
    repo = SubmissionRepository(db)

    updated = await repo.mark_chunk_received(submission.id, 2)

    assert updated.progress == [False, False, True, False]
    assert updated.received_count == 1
    assert updated.state == SubmissionState.RECEIVING


async def test_repeated_chunk_does_not_double_count(db):
    submission = await create_chunked(db, 3)
    repo = SubmissionRepository(db)

    await repo.mark_chunk_received(submission.id, 0)
    updated = await repo.mark_chunk_received(submission.id, 0)

    assert updated.received_count == 1
    assert updated.chunk_progress == "100"


async def test_last_chunk_sets_ready_for_reassembly(db):
    submission = await create_chunked(db, 2)
    repo = SubmissionRepository(db)

    await repo.mark_chunk_received(submission.id, 1)
    updated = await repo.mark_chunk_received(submission.id, 0)

    assert updated.received_count == 2
    assert updated.ready_for_reassembly is True
    assert updated.state == SubmissionState.READY_FOR_REASSEMBLY


async def test_out_of_range_index_changes_nothing(db):
    submission = await create_chunked(db, 2)

    updated = await SubmissionRepository(db).mark_chunk_received(submission.id, 5)

    assert updated.chunk_progress == "00"
    assert updated.received_count == 0


async def test_parallel_updates_lose_nothing(db, session_maker):
    total = 8
    submission = await create_chunked(db, total)

    async def mark(index):
        async with session_maker() as session:
            await SubmissionRepository(session).mark_chunk_received(submission.id, index)

    await asyncio.gather(*(mark(i) for i in reversed(range(total))))

    final = await SubmissionRepository(db).get(submission.id)
    assert final.progress == [True] * total
    assert final.received_count == total
    assert final.ready_for_reassembly is True


async def test_only_one_completed_submission_per_pair(db):
    repo = SubmissionRepository(db)
    await repo.create(exam_id="exam-1", student_id="alice", reassembly_complete=True,
                      storage_mode=StorageMode.CHUNKED_STORE.value, primary_blob_id="b1")

    # emergency and in-progress records are not constrained
    await repo.create(exam_id="exam-1", student_id="alice", reassembly_complete=True, is_emergency=True)
    await repo.create(exam_id="exam-1", student_id="alice", is_chunked=True, total_chunks=2, chunk_progress="00")

    with pytest.raises(IntegrityError):
        await repo.create(exam_id="exam-1", student_id="alice", reassembly_complete=True,
                          storage_mode=StorageMode.CHUNKED_STORE.value, primary_blob_id="b2")


async def test_find_active_prefers_completed(db):
    repo = SubmissionRepository(db)
    done = await repo.create(exam_id="exam-1", student_id="alice", reassembly_complete=True)
    await repo.create(exam_id="exam-1", student_id="alice", is_chunked=True, total_chunks=1, chunk_progress="0")

    active = await repo.find_active("exam-1", "alice")
    assert active.id == done.id
    assert await repo.find_completed("exam-1", "alice", exclude_id=done.id) is None


async def test_grading_leaves_storage_state_alone(db):
    repo = SubmissionRepository(db)
    submission = await repo.create(exam_id="exam-1", student_id="alice", reassembly_complete=True,
                                   storage_mode=StorageMode.CHUNKED_STORE.value, primary_blob_id="b1")

    graded = await repo.update_grade(submission, 87.5, "Good work")

    assert graded.grade == 87.5
    assert graded.feedback == "Good work"
    assert graded.graded_at is not None
    assert graded.status == "graded"
    assert graded.primary_blob_id == "b1"
    assert graded.state == SubmissionState.COMPLETE
