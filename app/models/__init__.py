from .user import User
from .exam import Exam
from .blob import StoredBlob, BlobChunk
from .submission import Submission, StorageMode, SubmissionState

__all__ = [
    "User",
    "Exam",
    "StoredBlob",
    "BlobChunk",
    "Submission",
    "StorageMode",
    "SubmissionState"
]
