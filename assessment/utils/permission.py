from fastapi import HTTPException, status

from assessment.schemas.exam_attempt import AttemptRecord
from assessment.schemas.user import CurrentUser


class PermissionHelper:
    @staticmethod
    def require_student(user: CurrentUser):
        if not user.is_student:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only students can take exams."
            )

    @staticmethod
    def require_attempt_owner(user: CurrentUser, attempt: AttemptRecord):
        if attempt.student_id != user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only act on your own exam attempts."
            )

    @staticmethod
    def require_attempt_view_permission(user: CurrentUser, attempt: AttemptRecord):
        if user.is_staff:
            return
        PermissionHelper.require_attempt_owner(user, attempt)
