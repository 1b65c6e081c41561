from enum import Enum


class RoleEnum(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"

class QuestionTypeEnum(str, Enum):
    SINGLE_CHOICE = "single_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"

class ExamAttemptStatusEnum(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    EXPIRED = "expired"
    ABANDONED = "abandoned"

# Finalized statuses; these are scored
FINALIZED_STATUSES = (ExamAttemptStatusEnum.SUBMITTED, ExamAttemptStatusEnum.EXPIRED)

class EnrollmentStatusEnum(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DROPPED = "dropped"

class EventEnum(str, Enum):
    ATTEMPT_FINALIZED = "attempt_finalized"
    LESSON_COMPLETED = "lesson_completed"
