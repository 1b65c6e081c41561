from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from assessment.schemas.lesson_progress import CourseProgress, LessonProgressView, LessonWatchRequest
from assessment.schemas.response import APIResponse
from assessment.schemas.user import CurrentUser
from assessment.services.course_progress import CourseProgressService
from assessment.utils import deps
from assessment.utils.permission import PermissionHelper as permission_helper

router = APIRouter()


@router.post("/lessons/{lesson_id}/complete", response_model=APIResponse[LessonProgressView])
async def complete_lesson(
    *,
    lesson_id: int,
    db: Session = Depends(deps.get_transactional_db),
    user: CurrentUser = Depends(deps.get_current_user),
    service: CourseProgressService = Depends(deps.get_progress_service)
):
    permission_helper.require_student(user)
    progress = await service.mark_lesson_complete(db, student_id=user.id, lesson_id=lesson_id)
    return APIResponse(message="Lesson marked as completed", data=progress)


@router.post("/lessons/{lesson_id}/watch", response_model=APIResponse[LessonProgressView])
async def record_lesson_watch(
    *,
    lesson_id: int,
    watch_in: LessonWatchRequest,
    db: Session = Depends(deps.get_transactional_db),
    user: CurrentUser = Depends(deps.get_current_user),
    service: CourseProgressService = Depends(deps.get_progress_service)
):
    permission_helper.require_student(user)
    progress = await service.record_lesson_watch(
        db, student_id=user.id, lesson_id=lesson_id, watched_percentage=watch_in.watched_percentage
    )
    return APIResponse(message="Lesson progress recorded", data=progress)


@router.get("/courses/{course_id}/progress", response_model=APIResponse[CourseProgress])
async def get_course_progress(
    *,
    course_id: int,
    db: Session = Depends(deps.get_transactional_db),
    user: CurrentUser = Depends(deps.get_current_user),
    service: CourseProgressService = Depends(deps.get_progress_service)
):
    progress = service.recompute(db, student_id=user.id, course_id=course_id)
    return APIResponse(message="Course progress retrieved successfully", data=progress)
