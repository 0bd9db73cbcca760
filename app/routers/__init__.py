from .auth import router as auth_router
from .submission import router as submission_router
from .exams import router as exams_router
from .upload_pdf import router as upload_pdf_router

__all__ = [
    'auth_router',
    'submission_router',
    'exams_router',
    'upload_pdf_router'
]
