from typing import Any, Dict, Optional


class AssessmentError(Exception):
    """Base class for errors raised by the attempt engine."""

    status_code: int = 400
    code: str = "ASSESSMENT_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ExamNotFound(AssessmentError):
    status_code = 404
    code = "EXAM_NOT_FOUND"


class AttemptNotFound(AssessmentError):
    status_code = 404
    code = "ATTEMPT_NOT_FOUND"


class OutOfWindow(AssessmentError):
    """The exam is not open for new attempts right now."""
    status_code = 403
    code = "OUT_OF_WINDOW"


class AttemptLimitExceeded(AssessmentError):
    status_code = 409
    code = "ATTEMPT_LIMIT_EXCEEDED"


class AttemptConflict(AssessmentError):
    """Another request created the same attempt number first."""
    status_code = 409
    code = "ATTEMPT_CONFLICT"


class AttemptAlreadyFinalized(AssessmentError):
    """A mutation reached an attempt that is no longer in progress.

    Public engine entry points swallow this and hand back the current attempt,
    so a retried or racing submit is a no-op for the caller.
    """
    status_code = 409
    code = "ATTEMPT_ALREADY_FINALIZED"


class InvalidAnswer(AssessmentError):
    status_code = 400
    code = "INVALID_ANSWER"


class FlushFailed(AssessmentError):
    """Drafts could not be persisted; they stay buffered for the next flush."""
    status_code = 503
    code = "FLUSH_FAILED"


class ScoringFailed(AssessmentError):
    status_code = 500
    code = "SCORING_FAILED"


class QuestionCatalogError(AssessmentError):
    status_code = 500
    code = "QUESTION_CATALOG_ERROR"


class LessonNotFound(AssessmentError):
    status_code = 404
    code = "LESSON_NOT_FOUND"


class NotEnrolled(AssessmentError):
    status_code = 404
    code = "NOT_ENROLLED"
