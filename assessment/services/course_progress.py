import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from assessment.core.config import settings
from assessment.core.constants import EnrollmentStatusEnum, EventEnum
from assessment.core.database import SessionLocal
from assessment.core.exceptions import LessonNotFound, NotEnrolled
from assessment.crud.course_enrollment import course_enrollment as crud_enrollment
from assessment.crud.lesson import lesson as crud_lesson
from assessment.crud.lesson_progress import lesson_progress as crud_lesson_progress
from assessment.schemas.lesson_progress import CourseProgress, LessonProgressView
from assessment.utils.clock import Clock, utcnow
from assessment.utils.events import EventBus, event_bus

logger = logging.getLogger(__name__)


def completion_percentage(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return round(min(completed, total) / total * 100)


class CourseProgressService:
    """Derives course completion from lesson completion records.

    ``recompute`` always rebuilds the percentage from the source rows, so
    calling it again for the same student and course changes nothing.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, clock: Clock = utcnow):
        self.session_factory = session_factory
        self.clock = clock
        self.events = event_bus

    def register(self, events: EventBus):
        self.events = events
        events.subscribe(EventEnum.LESSON_COMPLETED, self.handle_event)
        events.subscribe(EventEnum.ATTEMPT_FINALIZED, self.handle_event)

    async def handle_event(self, data: Dict[str, Any]):
        course_id = data.get("course_id")
        student_id = data.get("student_id")
        if not course_id or not student_id:
            return

        db = self.session_factory()
        try:
            self.recompute(db, student_id=student_id, course_id=course_id)
        except NotEnrolled:
            logger.info(f"Skipping progress for student {student_id}: not enrolled in course {course_id}")
        finally:
            db.close()

    def recompute(self, db: Session, *, student_id: int, course_id: int) -> CourseProgress:
        enrollment = crud_enrollment.get_by_user_and_course(db, student_id=student_id, course_id=course_id)
        if not enrollment:
            raise NotEnrolled("You are not enrolled in this course.", details={"course_id": course_id})

        total = crud_lesson.count_by_course(db, course_id=course_id)
        completed = crud_lesson_progress.count_completed(db, student_id=student_id, course_id=course_id)
        percentage = completion_percentage(completed, total)

        update: Dict[str, Any] = {"progress_percentage": percentage}
        if percentage >= 100 and enrollment.status != EnrollmentStatusEnum.COMPLETED:
            update["status"] = EnrollmentStatusEnum.COMPLETED
            update["completed_at"] = self.clock()
        elif percentage > 0 and enrollment.status == EnrollmentStatusEnum.NOT_STARTED:
            update["status"] = EnrollmentStatusEnum.IN_PROGRESS

        if percentage != enrollment.progress_percentage or "status" in update:
            enrollment = crud_enrollment.update(db, db_obj=enrollment, obj_in=update)
            logger.info(f"Progress for student {student_id} in course {course_id}: {percentage}% ({completed}/{total})")

        return CourseProgress(
            student_id=student_id,
            course_id=course_id,
            total_lessons=total,
            completed_lessons=completed,
            progress_percentage=percentage,
            status=enrollment.status,
        )

    def _get_lesson(self, db: Session, lesson_id: int):
        lesson = crud_lesson.get(db, id=lesson_id)
        if not lesson:
            raise LessonNotFound("Lesson not found.", details={"lesson_id": lesson_id})
        return lesson

    def _get_or_create_progress(self, db: Session, student_id: int, lesson_id: int):
        progress = crud_lesson_progress.get_by_student_and_lesson(db, student_id=student_id, lesson_id=lesson_id)
        if not progress:
            progress = crud_lesson_progress.create(db, obj_in={
                "student_id": student_id,
                "lesson_id": lesson_id,
                "watched_percentage": 0,
                "is_completed": False,
            })
        return progress

    async def mark_lesson_complete(self, db: Session, *, student_id: int, lesson_id: int,
                                   events: Optional[EventBus] = None) -> LessonProgressView:
        lesson = self._get_lesson(db, lesson_id)
        progress = self._get_or_create_progress(db, student_id, lesson_id)
        newly_completed = not progress.is_completed
        if newly_completed:
            progress = crud_lesson_progress.update(db, db_obj=progress, obj_in={
                "is_completed": True,
                "completed_at": self.clock(),
            })
            await (events or self.events).publish(EventEnum.LESSON_COMPLETED, {
                "student_id": student_id,
                "lesson_id": lesson_id,
                "course_id": lesson.course_id,
            })
        return LessonProgressView(
            lesson_id=lesson_id,
            course_id=lesson.course_id,
            is_completed=True,
            watched_percentage=progress.watched_percentage or 0,
        )

    async def record_lesson_watch(self, db: Session, *, student_id: int, lesson_id: int,
                                  watched_percentage: int, events: Optional[EventBus] = None) -> LessonProgressView:
        lesson = self._get_lesson(db, lesson_id)
        progress = self._get_or_create_progress(db, student_id, lesson_id)
        # watching a part again never lowers what was already watched
        watched = max(progress.watched_percentage or 0, watched_percentage)
        if watched != progress.watched_percentage:
            progress = crud_lesson_progress.update(db, db_obj=progress, obj_in={"watched_percentage": watched})

        if watched >= settings.LESSON_COMPLETION_THRESHOLD and not progress.is_completed:
            return await self.mark_lesson_complete(db, student_id=student_id, lesson_id=lesson_id, events=events)

        return LessonProgressView(
            lesson_id=lesson_id,
            course_id=lesson.course_id,
            is_completed=bool(progress.is_completed),
            watched_percentage=watched,
        )


course_progress_service = CourseProgressService()
