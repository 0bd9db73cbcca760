import json
from datetime import datetime
from typing import Any, Dict, Optional

# Plain-text records stored in place of a PDF when a submission degrades.

def text_only_record(
    student_name: str,
    exam_id: str,
    reason: Optional[str],
    pages_attempted: Optional[Any] = None
) -> bytes:
    return f"""
TEXT-ONLY EXAM SUBMISSION
-----------------------
Student: {student_name}
Exam ID: {exam_id}
Submitted: {datetime.utcnow().isoformat()}
Pages Attempted: {pages_attempted or 'Unknown'}
Reason: {reason or 'PDF submission failed'}
-----------------------
Note to instructor: The student attempted to submit this exam, but PDF submission failed.
Please contact the student to arrange an alternative submission method or resubmission.
""".encode("utf-8")

def partial_record(
    student_name: str,
    exam_id: str,
    submission_id: str,
    chunks_found: int,
    chunks_total: int
) -> bytes:
    return f"""
PARTIAL SUBMISSION - REASSEMBLY ISSUE
-----------------------
Student: {student_name}
Exam ID: {exam_id}
Submission ID: {submission_id}
Submitted: {datetime.utcnow().isoformat()}
Chunks Received: {chunks_found} of {chunks_total}
Status: Some chunks were missing or corrupted
-----------------------
Note to instructor: The student submitted this exam in chunks, but some chunks were missing during reassembly.
The server received {chunks_found} of {chunks_total} total chunks.
Please contact the student to arrange verification or resubmission if needed.
""".encode("utf-8")

def reassembly_failed_record(
    student_name: str,
    exam_id: str,
    submission_id: str,
    chunks_found: int,
    chunks_total: int,
    error: str
) -> bytes:
    return f"""
EMERGENCY RECORD - REASSEMBLY FAILED
-----------------------
Student: {student_name}
Exam ID: {exam_id}
Submission ID: {submission_id}
Submitted: {datetime.utcnow().isoformat()}
Chunks Found: {chunks_found} of {chunks_total}
Error: {error}
-----------------------
Note to instructor: The system found {chunks_found} chunks but could not reassemble them into a PDF.
Please contact the student to arrange verification or resubmission.
""".encode("utf-8")

def emergency_record(data: Dict[str, Any]) -> bytes:
    return json.dumps(data, indent=2, default=str).encode("utf-8")
