from datetime import datetime

import pytest
from sqlalchemy.orm import Session

from assessment.core.constants import EnrollmentStatusEnum
from assessment.core.exceptions import LessonNotFound, NotEnrolled
from assessment.models.course_enrollment import CourseEnrollment
from assessment.models.lesson_progress import LessonProgress
from assessment.services.course_progress import completion_percentage
from tests.helpers.factories import create_course, enroll, exam_with_single_choice, lessons_of

STUDENT_ID = 12


def test_completion_percentage_rounds_and_handles_empty_courses():
    assert completion_percentage(0, 0) == 0
    assert completion_percentage(1, 3) == 33
    assert completion_percentage(2, 3) == 67
    assert completion_percentage(3, 3) == 100


@pytest.mark.asyncio
async def test_completing_lessons_moves_course_progress(progress_service, db_session: Session, events):
    course = create_course(db_session, lessons=4)
    enroll(db_session, STUDENT_ID, course.id)
    lessons = lessons_of(db_session, course.id)

    await progress_service.mark_lesson_complete(db_session, student_id=STUDENT_ID, lesson_id=lessons[0].id, events=events)
    progress = progress_service.recompute(db_session, student_id=STUDENT_ID, course_id=course.id)
    assert progress.completed_lessons == 1
    assert progress.progress_percentage == 25
    assert progress.status == EnrollmentStatusEnum.IN_PROGRESS

    for lesson in lessons[1:]:
        await progress_service.mark_lesson_complete(db_session, student_id=STUDENT_ID, lesson_id=lesson.id, events=events)
    progress = progress_service.recompute(db_session, student_id=STUDENT_ID, course_id=course.id)
    assert progress.progress_percentage == 100
    assert progress.status == EnrollmentStatusEnum.COMPLETED


@pytest.mark.asyncio
async def test_recompute_is_idempotent(progress_service, db_session: Session, events, clock):
    course = create_course(db_session, lessons=2)
    enroll(db_session, STUDENT_ID, course.id)
    lessons = lessons_of(db_session, course.id)
    for lesson in lessons:
        await progress_service.mark_lesson_complete(db_session, student_id=STUDENT_ID, lesson_id=lesson.id, events=events)

    first = progress_service.recompute(db_session, student_id=STUDENT_ID, course_id=course.id)
    completed_at = db_session.query(CourseEnrollment).filter_by(student_id=STUDENT_ID).one().completed_at
    clock.advance(days=1)
    second = progress_service.recompute(db_session, student_id=STUDENT_ID, course_id=course.id)

    assert first == second
    assert db_session.query(CourseEnrollment).filter_by(student_id=STUDENT_ID).one().completed_at == completed_at


@pytest.mark.asyncio
async def test_completing_the_same_lesson_twice_counts_once(progress_service, db_session: Session, events):
    course = create_course(db_session, lessons=2)
    enroll(db_session, STUDENT_ID, course.id)
    lesson = lessons_of(db_session, course.id)[0]

    await progress_service.mark_lesson_complete(db_session, student_id=STUDENT_ID, lesson_id=lesson.id, events=events)
    await progress_service.mark_lesson_complete(db_session, student_id=STUDENT_ID, lesson_id=lesson.id, events=events)

    progress = progress_service.recompute(db_session, student_id=STUDENT_ID, course_id=course.id)
    assert progress.completed_lessons == 1
    assert progress.progress_percentage == 50


@pytest.mark.asyncio
async def test_lesson_completion_event_updates_enrollment(progress_service, db_session: Session, events):
    course = create_course(db_session, lessons=2)
    enroll(db_session, STUDENT_ID, course.id)
    lesson = lessons_of(db_session, course.id)[0]

    await progress_service.mark_lesson_complete(db_session, student_id=STUDENT_ID, lesson_id=lesson.id, events=events)

    db_session.expire_all()
    enrollment = db_session.query(CourseEnrollment).filter_by(student_id=STUDENT_ID, course_id=course.id).one()
    assert enrollment.progress_percentage == 50


@pytest.mark.asyncio
async def test_watching_most_of_a_lesson_completes_it(progress_service, db_session: Session, events):
    course = create_course(db_session, lessons=1)
    enroll(db_session, STUDENT_ID, course.id)
    lesson = lessons_of(db_session, course.id)[0]

    partial = await progress_service.record_lesson_watch(
        db_session, student_id=STUDENT_ID, lesson_id=lesson.id, watched_percentage=60, events=events
    )
    assert partial.is_completed is False

    rewatch = await progress_service.record_lesson_watch(
        db_session, student_id=STUDENT_ID, lesson_id=lesson.id, watched_percentage=20, events=events
    )
    assert rewatch.watched_percentage == 60

    done = await progress_service.record_lesson_watch(
        db_session, student_id=STUDENT_ID, lesson_id=lesson.id, watched_percentage=90, events=events
    )
    assert done.is_completed is True
    assert progress_service.recompute(db_session, student_id=STUDENT_ID, course_id=course.id).progress_percentage == 100


@pytest.mark.asyncio
async def test_deleted_lessons_drop_out_of_progress(progress_service, db_session: Session, events):
    course = create_course(db_session, lessons=3)
    enroll(db_session, STUDENT_ID, course.id)
    lessons = lessons_of(db_session, course.id)
    await progress_service.mark_lesson_complete(db_session, student_id=STUDENT_ID, lesson_id=lessons[0].id, events=events)

    lessons[0].deleted_at = datetime(2026, 3, 1)
    db_session.commit()

    progress = progress_service.recompute(db_session, student_id=STUDENT_ID, course_id=course.id)
    assert progress.total_lessons == 2
    assert progress.completed_lessons == 0
    assert progress.progress_percentage == 0


@pytest.mark.asyncio
async def test_unknown_lesson_and_missing_enrollment(progress_service, db_session: Session, events):
    course = create_course(db_session, lessons=1)
    with pytest.raises(LessonNotFound):
        await progress_service.mark_lesson_complete(db_session, student_id=STUDENT_ID, lesson_id=999, events=events)
    with pytest.raises(NotEnrolled):
        progress_service.recompute(db_session, student_id=STUDENT_ID, course_id=course.id)


@pytest.mark.asyncio
async def test_finalized_attempt_triggers_progress_recompute(engine, db_session: Session):
    course = create_course(db_session, lessons=2)
    enroll(db_session, STUDENT_ID, course.id)
    lesson = lessons_of(db_session, course.id)[0]
    # completion recorded without going through the service, so nothing recomputed yet
    db_session.add(LessonProgress(student_id=STUDENT_ID, lesson_id=lesson.id, watched_percentage=100, is_completed=True))
    db_session.commit()
    exam, _ = exam_with_single_choice(db_session, count=1, course_id=course.id)

    session = await engine.start_attempt(exam.id, STUDENT_ID)
    outcome = await engine.submit(session.attempt.id)

    assert outcome.applied is True
    db_session.expire_all()
    enrollment = db_session.query(CourseEnrollment).filter_by(student_id=STUDENT_ID, course_id=course.id).one()
    assert enrollment.progress_percentage == 50
    assert enrollment.status == EnrollmentStatusEnum.IN_PROGRESS
