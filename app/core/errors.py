from typing import Optional

class ExamifyError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

class ValidationError(ExamifyError):
    status_code = 400
    default_message = "Invalid request"

class InvalidPayloadFormat(ValidationError):
    default_message = "Invalid PDF data format"

class EmptyPayload(ValidationError):
    default_message = "Empty PDF buffer after conversion"

class Unauthorized(ExamifyError):
    status_code = 401
    default_message = "Login required"

class Forbidden(ExamifyError):
    status_code = 403
    default_message = "Not authorized"

class NotFound(ExamifyError):
    status_code = 404
    default_message = "Not found"

class RequestTimeout(ExamifyError):
    status_code = 408
    default_message = "Request timeout while processing upload"

class Conflict(ExamifyError):
    status_code = 409
    default_message = "You have already submitted this exam"

class PayloadTooLarge(ExamifyError):
    status_code = 413
    default_message = "PDF file too large, please reduce size or use chunked upload"

class StoreUnavailable(ExamifyError):
    status_code = 503
    default_message = "Database connection not ready, please try again"

class WriteTimeout(ExamifyError):
    status_code = 503
    default_message = "Upload timed out"

class ReassemblyImpossible(ExamifyError):
    status_code = 500
    default_message = "Failed to retrieve any chunks for reassembly"
