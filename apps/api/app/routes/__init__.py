"""Route modules."""

from .callbacks import router as callbacks_router
from .jobs import router as jobs_router
from .transcribe import router as transcribe_router
from .verification import router as verification_router

__all__ = ["callbacks_router", "jobs_router", "transcribe_router", "verification_router"]
