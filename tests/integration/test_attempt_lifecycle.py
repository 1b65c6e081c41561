import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from assessment.core.constants import EventEnum, ExamAttemptStatusEnum, QuestionTypeEnum
from assessment.core.exceptions import (
    AttemptLimitExceeded,
    ExamNotFound,
    InvalidAnswer,
    OutOfWindow,
)
from assessment.services.countdown import CountdownScheduler
from assessment.services.exam_attempt import AttemptStateMachine
from assessment.services.question_catalog import QuestionCatalog
from assessment.services.scoring import ScoringEngine
from tests.helpers.factories import add_question, create_exam, exam_with_single_choice

STUDENT_ID = 41


def all_answers(questions, value="b"):
    return {q.id: value for q in questions}


@pytest.mark.asyncio
async def test_submit_scores_every_answer(engine, db_session: Session, clock):
    exam, questions = exam_with_single_choice(db_session, count=5)

    session = await engine.start_attempt(exam.id, STUDENT_ID)
    assert session.remaining_seconds == 3600
    assert session.attempt.attempt_number == 1
    assert len(session.questions) == 5

    clock.advance(minutes=4)
    saved = await engine.save_answers(session.attempt.id, all_answers(questions))
    assert saved.accepted and saved.flushed
    assert saved.answered_count == 5

    clock.advance(minutes=6)
    outcome = await engine.submit(session.attempt.id)
    assert outcome.applied is True
    assert outcome.attempt.status == ExamAttemptStatusEnum.SUBMITTED

    result = await engine.result(session.attempt.id)
    assert result.score == 5
    assert result.max_score == 5
    assert result.score_percentage == 100
    assert result.passed is True
    assert result.is_fully_scored is True
    assert result.time_spent_minutes == 10
    assert not engine.countdown.is_running(session.attempt.id)


@pytest.mark.asyncio
async def test_countdown_expiry_finalizes_with_saved_answers(engine, db_session: Session, clock):
    exam, questions = exam_with_single_choice(db_session, count=5, passing_score=70)
    session = await engine.start_attempt(exam.id, STUDENT_ID)
    attempt_id = session.attempt.id

    answers = all_answers(questions[:3])
    answers[questions[3].id] = "a"
    await engine.save_answers(attempt_id, answers)

    clock.advance(minutes=60)
    await engine.countdown.tick(attempt_id)

    result = await engine.result(attempt_id)
    assert result.status == ExamAttemptStatusEnum.EXPIRED
    assert result.score == 3
    assert result.score_percentage == 60
    assert result.passed is False
    assert result.time_spent_minutes == 60


@pytest.mark.asyncio
async def test_submit_and_expiry_race_finalizes_once(engine, db_session: Session, clock, events):
    finalized = []

    async def collect(data):
        finalized.append(data)

    events.subscribe(EventEnum.ATTEMPT_FINALIZED, collect)

    exam, questions = exam_with_single_choice(db_session, count=5)
    session = await engine.start_attempt(exam.id, STUDENT_ID)
    await engine.save_answers(session.attempt.id, all_answers(questions))
    clock.advance(minutes=30)

    outcomes = await asyncio.gather(
        engine.submit(session.attempt.id),
        engine.expire(session.attempt.id),
    )

    assert sorted(o.applied for o in outcomes) == [False, True]
    winner = next(o for o in outcomes if o.applied)
    loser = next(o for o in outcomes if not o.applied)
    assert loser.attempt.status == winner.attempt.status
    assert len(finalized) == 1
    assert finalized[0]["attempt_id"] == session.attempt.id


@pytest.mark.asyncio
async def test_second_submit_is_a_no_op(engine, db_session: Session, clock):
    exam, questions = exam_with_single_choice(db_session, count=2)
    session = await engine.start_attempt(exam.id, STUDENT_ID)
    clock.advance(minutes=1)
    first = await engine.submit(session.attempt.id)
    clock.advance(minutes=1)
    second = await engine.submit(session.attempt.id)

    assert first.applied is True
    assert second.applied is False
    assert second.attempt.completed_at == first.attempt.completed_at


@pytest.mark.asyncio
async def test_submit_after_deadline_is_recorded_as_expired(engine, db_session: Session, clock):
    exam, _ = exam_with_single_choice(db_session, count=1, duration_minutes=15)
    session = await engine.start_attempt(exam.id, STUDENT_ID)
    clock.advance(minutes=20)

    outcome = await engine.submit(session.attempt.id)

    assert outcome.applied is True
    assert outcome.attempt.status == ExamAttemptStatusEnum.EXPIRED
    assert outcome.attempt.time_spent_seconds == 15 * 60


@pytest.mark.asyncio
async def test_answers_after_finalize_are_rejected(engine, db_session: Session, clock):
    exam, questions = exam_with_single_choice(db_session, count=2)
    session = await engine.start_attempt(exam.id, STUDENT_ID)
    await engine.save_answers(session.attempt.id, {questions[0].id: "a"})
    await engine.submit(session.attempt.id)

    late = await engine.save_answers(session.attempt.id, {questions[0].id: "b"})

    assert late.accepted is False
    assert await engine.store.get_answers(session.attempt.id) == {questions[0].id: "a"}


@pytest.mark.asyncio
async def test_answers_for_other_exams_are_invalid(engine, db_session: Session):
    exam, _ = exam_with_single_choice(db_session, count=2)
    session = await engine.start_attempt(exam.id, STUDENT_ID)
    with pytest.raises(InvalidAnswer):
        await engine.save_answers(session.attempt.id, {9999: "a"})


@pytest.mark.asyncio
async def test_attempt_limit(engine, db_session: Session, clock):
    exam, _ = exam_with_single_choice(db_session, count=1, max_attempts=1)
    session = await engine.start_attempt(exam.id, STUDENT_ID)
    await engine.submit(session.attempt.id)

    with pytest.raises(AttemptLimitExceeded):
        await engine.start_attempt(exam.id, STUDENT_ID)


@pytest.mark.asyncio
async def test_unlimited_attempts_number_sequentially(engine, db_session: Session, clock):
    exam, _ = exam_with_single_choice(db_session, count=1, max_attempts=0)
    numbers = []
    for _ in range(3):
        session = await engine.start_attempt(exam.id, STUDENT_ID)
        numbers.append(session.attempt.attempt_number)
        await engine.submit(session.attempt.id)
        clock.advance(minutes=1)
    assert numbers == [1, 2, 3]


@pytest.mark.asyncio
async def test_starting_at_the_limit_reopens_the_running_attempt(engine, db_session: Session, clock):
    exam, _ = exam_with_single_choice(db_session, count=1, max_attempts=1)
    first = await engine.start_attempt(exam.id, STUDENT_ID)
    clock.advance(minutes=5)

    again = await engine.start_attempt(exam.id, STUDENT_ID)

    assert again.attempt.id == first.attempt.id
    assert again.remaining_seconds == 55 * 60


@pytest.mark.asyncio
async def test_new_attempt_abandons_the_running_one(engine, db_session: Session, clock):
    exam, _ = exam_with_single_choice(db_session, count=1, max_attempts=3)
    first = await engine.start_attempt(exam.id, STUDENT_ID)
    clock.advance(minutes=5)

    second = await engine.start_attempt(exam.id, STUDENT_ID)

    assert second.attempt.attempt_number == 2
    previous = await engine.get_attempt(first.attempt.id)
    assert previous.status == ExamAttemptStatusEnum.ABANDONED
    assert previous.score is None


@pytest.mark.asyncio
async def test_exam_window_is_enforced(engine, db_session: Session, clock):
    not_yet = create_exam(db_session, start_date=clock() + timedelta(days=1))
    closed = create_exam(db_session, end_date=clock() - timedelta(minutes=1))

    with pytest.raises(OutOfWindow):
        await engine.start_attempt(not_yet.id, STUDENT_ID)
    with pytest.raises(OutOfWindow):
        await engine.start_attempt(closed.id, STUDENT_ID)
    with pytest.raises(ExamNotFound):
        await engine.start_attempt(424242, STUDENT_ID)


@pytest.mark.asyncio
async def test_essay_keeps_result_provisional_until_graded(engine, db_session: Session, clock):
    exam, questions = exam_with_single_choice(db_session, count=4, passing_score=80)
    essay = add_question(db_session, exam.id, 4, QuestionTypeEnum.ESSAY, points=1)
    session = await engine.start_attempt(exam.id, STUDENT_ID)
    answers = all_answers(questions)
    answers[essay.id] = "Gamma hedging rebalances delta as the underlying moves."
    await engine.save_answers(session.attempt.id, answers)
    await engine.submit(session.attempt.id)

    provisional = await engine.result(session.attempt.id)
    assert provisional.score == 4
    assert provisional.max_score == 5
    assert provisional.is_fully_scored is False
    assert provisional.passed is None

    with pytest.raises(InvalidAnswer):
        await engine.grade_answer(session.attempt.id, questions[0].id, 1, grader_id=7)
    with pytest.raises(InvalidAnswer):
        await engine.grade_answer(session.attempt.id, essay.id, 3, grader_id=7)

    graded = await engine.grade_answer(session.attempt.id, essay.id, 1, grader_id=7)
    assert graded.score == 5
    assert graded.is_fully_scored is True
    assert graded.passed is True


@pytest.mark.asyncio
async def test_provisional_result_hides_percentage_until_essay_graded(engine, db_session: Session, clock):
    exam, questions = exam_with_single_choice(db_session, count=4, passing_score=60)
    essay = add_question(db_session, exam.id, 4, QuestionTypeEnum.ESSAY, points=5)
    session = await engine.start_attempt(exam.id, STUDENT_ID)
    answers = all_answers(questions)
    answers[essay.id] = "Vega measures sensitivity to implied volatility."
    await engine.save_answers(session.attempt.id, answers)
    await engine.submit(session.attempt.id)

    provisional = await engine.result(session.attempt.id)
    assert provisional.score == 4
    assert provisional.max_score == 9
    assert provisional.is_fully_scored is False
    assert provisional.score_percentage is None
    assert provisional.passed is None

    summary = await engine.results_summary(exam.id, STUDENT_ID)
    assert summary.attempts[0].score_percentage is None
    assert summary.best_score_percentage is None
    assert summary.average_score_percentage is None

    graded = await engine.grade_answer(session.attempt.id, essay.id, 5, grader_id=7)
    assert graded.score_percentage == 100
    assert graded.passed is True
    summary = await engine.results_summary(exam.id, STUDENT_ID)
    assert summary.best_score_percentage == 100
    assert summary.average_score_percentage == 100


class BrokenScorer(ScoringEngine):
    def score(self, questions, answers, manual_grades=None):
        raise RuntimeError("answer key unreadable")


@pytest.mark.asyncio
async def test_scoring_failure_flags_attempt_for_rescore(engine, db_session: Session, clock):
    exam, questions = exam_with_single_choice(db_session, count=2)
    session = await engine.start_attempt(exam.id, STUDENT_ID)
    await engine.save_answers(session.attempt.id, all_answers(questions))

    engine.scorer = BrokenScorer()
    outcome = await engine.submit(session.attempt.id)

    assert outcome.applied is True
    assert outcome.attempt.status == ExamAttemptStatusEnum.SUBMITTED
    flagged = await engine.result(session.attempt.id)
    assert flagged.needs_rescore is True
    assert flagged.score is None

    assert await engine.rescore_pending() == []

    engine.scorer = ScoringEngine()
    assert await engine.rescore_pending() == [session.attempt.id]
    fixed = await engine.result(session.attempt.id)
    assert fixed.score == 2
    assert fixed.needs_rescore is False


@pytest.mark.asyncio
async def test_resume_after_deadline_expires_immediately(engine, db_session: Session, clock):
    exam, questions = exam_with_single_choice(db_session, count=2, duration_minutes=30)
    session = await engine.start_attempt(exam.id, STUDENT_ID)
    await engine.save_answers(session.attempt.id, {questions[0].id: "b"})
    clock.advance(minutes=45)

    resumed = await engine.resume_attempt(session.attempt.id)

    assert resumed.attempt.status == ExamAttemptStatusEnum.EXPIRED
    assert resumed.remaining_seconds == 0
    assert resumed.answers == {questions[0].id: "b"}
    assert (await engine.result(session.attempt.id)).score == 1


@pytest.mark.asyncio
async def test_restart_resumes_answers_and_remaining_time(engine, session_factory, db_session: Session, clock, store, events):
    exam, questions = exam_with_single_choice(db_session, count=3)
    session = await engine.start_attempt(exam.id, STUDENT_ID)
    await engine.save_answers(session.attempt.id, {questions[0].id: "b", questions[2].id: "c"})
    clock.advance(minutes=20)

    restarted = AttemptStateMachine(
        store=store,
        catalog=QuestionCatalog(session_factory),
        countdown=CountdownScheduler(scheduler=None, clock=clock),
        events=events,
        clock=clock,
    )
    resumed = await restarted.resume_attempt(session.attempt.id)

    assert resumed.attempt.status == ExamAttemptStatusEnum.IN_PROGRESS
    assert resumed.answers == {questions[0].id: "b", questions[2].id: "c"}
    assert resumed.answered_count == 2
    assert resumed.remaining_seconds == 40 * 60
    assert restarted.countdown.is_running(session.attempt.id)


@pytest.mark.asyncio
async def test_expiry_sweep_finalizes_overdue_attempts(engine, db_session: Session, clock):
    exam, _ = exam_with_single_choice(db_session, count=1, duration_minutes=10, max_attempts=0)
    overdue = await engine.start_attempt(exam.id, 1)
    clock.advance(minutes=8)
    running = await engine.start_attempt(exam.id, 2)
    clock.advance(minutes=3)

    assert await engine.expire_overdue() == 1
    assert (await engine.get_attempt(overdue.attempt.id)).status == ExamAttemptStatusEnum.EXPIRED
    assert (await engine.get_attempt(running.attempt.id)).status == ExamAttemptStatusEnum.IN_PROGRESS


@pytest.mark.asyncio
async def test_results_summary_over_attempts(engine, db_session: Session, clock):
    exam, questions = exam_with_single_choice(db_session, count=4, max_attempts=2)

    first = await engine.start_attempt(exam.id, STUDENT_ID)
    await engine.save_answers(first.attempt.id, all_answers(questions[:2]))
    clock.advance(minutes=10)
    await engine.submit(first.attempt.id)

    second = await engine.start_attempt(exam.id, STUDENT_ID)
    await engine.save_answers(second.attempt.id, all_answers(questions))
    clock.advance(minutes=20)
    await engine.submit(second.attempt.id)

    summary = await engine.results_summary(exam.id, STUDENT_ID)
    assert summary.attempts_used == 2
    assert summary.attempts_allowed == 2
    assert summary.best_score_percentage == 100
    assert summary.average_score_percentage == 75
    assert summary.average_time_spent_minutes == 15
