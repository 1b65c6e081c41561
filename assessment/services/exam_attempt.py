from datetime import datetime, timedelta
from typing import Dict, List, Optional

from assessment.core.constants import EventEnum, ExamAttemptStatusEnum, FINALIZED_STATUSES
from assessment.core.exceptions import (
    AttemptAlreadyFinalized,
    AttemptLimitExceeded,
    AttemptNotFound,
    FlushFailed,
    InvalidAnswer,
    OutOfWindow,
    ScoringFailed,
)
from assessment.core.scheduler import scheduler
from assessment.schemas.exam import ExamRules
from assessment.schemas.exam_attempt import (
    AttemptRecord,
    AttemptResult,
    AttemptSession,
    ExamResultsSummary,
    FinalizeOutcome,
    SaveAnswersResult,
)
from assessment.schemas.question import EssayQuestion, QuestionForStudent
from assessment.schemas.scoring import ScoreResult
from assessment.services.answer_buffer import AnswerBuffer
from assessment.services.attempt_store import AttemptStore, SQLAlchemyAttemptStore
from assessment.services.countdown import CountdownScheduler
from assessment.services.question_catalog import QuestionCatalog
from assessment.services.scoring import ScoringEngine, scoring_engine
from assessment.utils.clock import Clock, utcnow
from assessment.utils.events import EventBus, event_bus
from assessment.utils.logger import setup_logger

logger = setup_logger("attempt_engine", "attempts.log")


def to_result(attempt: AttemptRecord) -> AttemptResult:
    percentage = None
    if attempt.is_fully_scored and attempt.score is not None and attempt.max_score:
        percentage = round(attempt.score / attempt.max_score * 100, 2)
    return AttemptResult(
        attempt_id=attempt.id,
        exam_id=attempt.exam_id,
        attempt_number=attempt.attempt_number,
        status=attempt.status,
        score=attempt.score,
        max_score=attempt.max_score,
        score_percentage=percentage,
        passed=attempt.passed,
        is_fully_scored=bool(attempt.is_fully_scored),
        needs_rescore=attempt.needs_rescore,
        time_spent_minutes=attempt.time_spent_seconds // 60,
        completed_at=attempt.completed_at,
    )


class AttemptStateMachine:
    """Lifecycle of exam attempts: in_progress -> submitted | expired | abandoned.

    Manual submit and countdown expiry both go through ``_finalize``, which
    ends in a compare-and-set on the attempt status. Whichever caller's update
    matches wins; the other gets ``FinalizeOutcome(applied=False)`` and the
    attempt as the winner left it.
    """

    def __init__(self, store: AttemptStore, catalog: QuestionCatalog, countdown: CountdownScheduler,
                 scorer: ScoringEngine = scoring_engine, events: EventBus = event_bus,
                 clock: Clock = utcnow):
        self.store = store
        self.catalog = catalog
        self.countdown = countdown
        self.scorer = scorer
        self.events = events
        self.clock = clock
        self._buffers: Dict[int, AnswerBuffer] = {}
        countdown.on_expire(self.expire)

    async def get_attempt(self, attempt_id: int) -> AttemptRecord:
        attempt = await self.store.get_attempt(attempt_id)
        if not attempt:
            raise AttemptNotFound("Exam attempt not found.", details={"attempt_id": attempt_id})
        return attempt

    def _deadline(self, attempt: AttemptRecord, exam: ExamRules) -> datetime:
        return attempt.started_at + timedelta(seconds=exam.duration_seconds)

    def _is_overdue(self, attempt: AttemptRecord, exam: ExamRules) -> bool:
        return self.clock() >= self._deadline(attempt, exam)

    async def _buffer(self, attempt: AttemptRecord) -> AnswerBuffer:
        buffer = self._buffers.get(attempt.id)
        if buffer is None:
            buffer = AnswerBuffer(attempt.id, self.store, clock=self.clock)
            buffer.load_persisted(await self.store.get_answers(attempt.id))
            self._buffers[attempt.id] = buffer
        return buffer

    async def _session(self, attempt: AttemptRecord, exam: ExamRules) -> AttemptSession:
        questions = self.catalog.get_questions(exam.id)
        if attempt.is_in_progress:
            buffer = await self._buffer(attempt)
            remaining = self.countdown.remaining(attempt.id)
            if remaining is None:
                remaining = max(0, int((self._deadline(attempt, exam) - self.clock()).total_seconds()))
            answers = buffer.drafts()
        else:
            remaining = 0
            answers = await self.store.get_answers(attempt.id)
        return AttemptSession(
            attempt=attempt,
            remaining_seconds=remaining,
            questions=[QuestionForStudent.from_question(q) for q in questions],
            answers=answers,
            answered_count=len(answers),
        )

    async def start_attempt(self, exam_id: int, student_id: int) -> AttemptSession:
        exam = self.catalog.get_exam(exam_id)
        now = self.clock()
        if not exam.is_open(now):
            raise OutOfWindow(
                "This exam is not open right now.",
                details={"exam_id": exam_id, "start_date": str(exam.start_date), "end_date": str(exam.end_date)},
            )

        previous = await self.store.list_attempts(exam_id, student_id)
        running = [a for a in previous if a.is_in_progress and not self._is_overdue(a, exam)]
        running_ids = {a.id for a in running}

        if not exam.unlimited_attempts and len(previous) >= exam.max_attempts:
            if running:
                logger.info(f"Student {student_id} re-opened running attempt {running[0].id} of exam {exam_id}")
                return await self.resume_attempt(running[0].id)
            raise AttemptLimitExceeded(
                "You have used all allowed attempts for this exam.",
                details={"exam_id": exam_id, "attempts_allowed": exam.max_attempts},
            )

        for attempt in previous:
            if not attempt.is_in_progress:
                continue
            if attempt.id in running_ids:
                await self.abandon(attempt.id)
            else:
                await self.expire(attempt.id)

        attempt = await self.store.create_attempt(exam_id, student_id, len(previous) + 1, now)
        self.countdown.start(attempt.id, exam.duration_seconds, attempt.started_at)
        self._buffers[attempt.id] = AnswerBuffer(attempt.id, self.store, clock=self.clock)
        logger.info(f"Attempt {attempt.id} (#{attempt.attempt_number}) started by student {student_id} on exam {exam_id}")
        return await self._session(attempt, exam)

    async def resume_attempt(self, attempt_id: int) -> AttemptSession:
        attempt = await self.get_attempt(attempt_id)
        exam = self.catalog.get_exam(attempt.exam_id)
        if attempt.is_in_progress:
            if self._is_overdue(attempt, exam):
                logger.info(f"Attempt {attempt_id} resumed after its deadline, expiring")
                attempt = (await self.expire(attempt_id)).attempt
            else:
                self.countdown.start(attempt.id, exam.duration_seconds, attempt.started_at)
        return await self._session(attempt, exam)

    async def save_answers(self, attempt_id: int, answers: Dict[int, Optional[str]]) -> SaveAnswersResult:
        attempt = await self.get_attempt(attempt_id)
        if not attempt.is_in_progress:
            return SaveAnswersResult(attempt_id=attempt_id, accepted=False, flushed=False, answered_count=0)

        exam = self.catalog.get_exam(attempt.exam_id)
        if self._is_overdue(attempt, exam):
            await self.expire(attempt_id)
            return SaveAnswersResult(attempt_id=attempt_id, accepted=False, flushed=False, answered_count=0)

        question_ids = {q.id for q in self.catalog.get_questions(exam.id)}
        unknown = sorted(set(answers) - question_ids)
        if unknown:
            raise InvalidAnswer(
                f"Invalid question_id(s): {unknown}. All questions must belong to the exam.",
                details={"question_ids": unknown},
            )

        buffer = await self._buffer(attempt)
        for question_id, value in answers.items():
            buffer.set(question_id, value)

        flushed = True
        try:
            await buffer.flush()
        except FlushFailed as e:
            logger.warning(f"Answers for attempt {attempt_id} kept in buffer: {e.message}")
            flushed = False
        except AttemptAlreadyFinalized:
            return SaveAnswersResult(attempt_id=attempt_id, accepted=False, flushed=False,
                                     answered_count=buffer.answered_count())

        return SaveAnswersResult(
            attempt_id=attempt_id,
            answered_count=buffer.answered_count(),
            pending_question_ids=buffer.pending(),
            flushed=flushed,
        )

    async def submit(self, attempt_id: int) -> FinalizeOutcome:
        return await self._finalize_once(attempt_id, ExamAttemptStatusEnum.SUBMITTED)

    async def expire(self, attempt_id: int) -> FinalizeOutcome:
        return await self._finalize_once(attempt_id, ExamAttemptStatusEnum.EXPIRED)

    async def abandon(self, attempt_id: int) -> FinalizeOutcome:
        return await self._finalize_once(attempt_id, ExamAttemptStatusEnum.ABANDONED)

    async def _finalize_once(self, attempt_id: int, to_status: ExamAttemptStatusEnum) -> FinalizeOutcome:
        try:
            attempt = await self._finalize(attempt_id, to_status)
            return FinalizeOutcome(applied=True, attempt=attempt)
        except AttemptAlreadyFinalized:
            attempt = await self.get_attempt(attempt_id)
            logger.info(f"Finalize to {to_status.value} ignored for attempt {attempt_id}, already {attempt.status.value}")
            return FinalizeOutcome(applied=False, attempt=attempt)

    async def _finalize(self, attempt_id: int, to_status: ExamAttemptStatusEnum) -> AttemptRecord:
        attempt = await self.get_attempt(attempt_id)
        if not attempt.is_in_progress:
            raise AttemptAlreadyFinalized("Exam attempt is no longer in progress.", details={"attempt_id": attempt_id})

        exam = self.catalog.get_exam(attempt.exam_id)
        if to_status == ExamAttemptStatusEnum.SUBMITTED and self._is_overdue(attempt, exam):
            # past the deadline a submit counts as expiry
            to_status = ExamAttemptStatusEnum.EXPIRED

        buffer = self._buffers.get(attempt_id)
        if buffer is not None and to_status != ExamAttemptStatusEnum.ABANDONED:
            try:
                await buffer.flush()
            except FlushFailed as e:
                logger.error(
                    f"Final flush failed for attempt {attempt_id}; finalizing with answers already saved "
                    f"({len(buffer.pending())} drafts unsaved): {e.message}"
                )

        self.countdown.cancel(attempt_id)

        now = self.clock()
        time_spent = int((now - attempt.started_at).total_seconds())
        time_spent = max(0, min(time_spent, exam.duration_seconds))
        applied = await self.store.finalize_attempt(
            attempt_id,
            from_status=ExamAttemptStatusEnum.IN_PROGRESS,
            to_status=to_status,
            completed_at=now,
            time_spent_seconds=time_spent,
        )
        if not applied:
            raise AttemptAlreadyFinalized("Exam attempt is no longer in progress.", details={"attempt_id": attempt_id})

        self._buffers.pop(attempt_id, None)
        logger.info(f"Attempt {attempt_id} finalized as {to_status.value} after {time_spent}s")

        if to_status in FINALIZED_STATUSES:
            try:
                await self._score(attempt, exam)
            except ScoringFailed as e:
                logger.error(f"Attempt {attempt_id} finalized without a score: {e.message}")
            await self.events.publish(EventEnum.ATTEMPT_FINALIZED, {
                "attempt_id": attempt_id,
                "exam_id": attempt.exam_id,
                "student_id": attempt.student_id,
                "course_id": exam.course_id,
                "status": to_status.value,
            })

        return await self.get_attempt(attempt_id)

    async def _score(self, attempt: AttemptRecord, exam: ExamRules) -> ScoreResult:
        try:
            questions = self.catalog.get_questions(exam.id)
            answers = await self.store.get_answers(attempt.id)
            manual_grades = await self.store.get_manual_grades(attempt.id)
            result = self.scorer.score(questions, answers, manual_grades)
            await self.store.set_score(attempt.id, result, result.passed(exam.passing_score))
        except Exception as e:
            logger.exception(f"Scoring failed for attempt {attempt.id}")
            try:
                await self.store.mark_for_rescore(attempt.id, f"{type(e).__name__}: {e}")
            except Exception as flag_error:
                logger.error(f"Could not flag attempt {attempt.id} for rescore: {flag_error}")
            raise ScoringFailed("Attempt could not be scored.", details={"attempt_id": attempt.id}) from e
        logger.info(
            f"Attempt {attempt.id} scored {result.total_score}/{result.max_score}"
            f"{'' if result.is_fully_scored else ' (provisional)'}"
        )
        return result

    async def rescore(self, attempt_id: int) -> AttemptResult:
        attempt = await self.get_attempt(attempt_id)
        if not attempt.is_finalized:
            raise ScoringFailed(
                f"Only submitted or expired attempts can be scored, this one is {attempt.status.value}.",
                details={"attempt_id": attempt_id},
            )
        await self._score(attempt, self.catalog.get_exam(attempt.exam_id))
        return to_result(await self.get_attempt(attempt_id))

    async def grade_answer(self, attempt_id: int, question_id: int, points: float,
                           grader_id: Optional[int] = None) -> AttemptResult:
        attempt = await self.get_attempt(attempt_id)
        if not attempt.is_finalized:
            raise InvalidAnswer("Only submitted or expired attempts can be graded.", details={"attempt_id": attempt_id})

        question = next((q for q in self.catalog.get_questions(attempt.exam_id) if q.id == question_id), None)
        if not isinstance(question, EssayQuestion):
            raise InvalidAnswer("Only essay questions are graded manually.", details={"question_id": question_id})
        if points > question.points:
            raise InvalidAnswer(
                f"A grade cannot exceed the question's {question.points} points.",
                details={"question_id": question_id, "points": points},
            )

        await self.store.record_manual_grade(attempt_id, question_id, points, grader_id)
        logger.info(f"Essay {question_id} of attempt {attempt_id} graded {points} by {grader_id}")
        return await self.rescore(attempt_id)

    async def result(self, attempt_id: int) -> AttemptResult:
        return to_result(await self.get_attempt(attempt_id))

    async def results_summary(self, exam_id: int, student_id: int) -> ExamResultsSummary:
        exam = self.catalog.get_exam(exam_id)
        attempts = await self.store.list_attempts(exam_id, student_id)
        results = [to_result(a) for a in attempts]
        finished = [r for r in results if r.status in FINALIZED_STATUSES]
        scored = [r.score_percentage for r in finished if r.is_fully_scored and r.score_percentage is not None]
        return ExamResultsSummary(
            exam_id=exam_id,
            student_id=student_id,
            attempts=results,
            best_score_percentage=max(scored) if scored else None,
            average_score_percentage=round(sum(scored) / len(scored), 2) if scored else None,
            average_time_spent_minutes=(
                round(sum(r.time_spent_minutes for r in finished) / len(finished)) if finished else None
            ),
            attempts_used=len(attempts),
            attempts_allowed=exam.max_attempts,
        )

    async def expire_overdue(self) -> int:
        """Expire in-progress attempts whose deadline passed, e.g. after a restart."""
        expired = 0
        exams: Dict[int, ExamRules] = {}
        for attempt in await self.store.list_in_progress():
            if attempt.exam_id not in exams:
                exams[attempt.exam_id] = self.catalog.get_exam(attempt.exam_id)
            if self._is_overdue(attempt, exams[attempt.exam_id]):
                outcome = await self.expire(attempt.id)
                expired += int(outcome.applied)
        return expired

    async def rescore_pending(self) -> List[int]:
        rescored = []
        for attempt in await self.store.list_needing_rescore():
            try:
                await self.rescore(attempt.id)
                rescored.append(attempt.id)
            except ScoringFailed as e:
                logger.warning(f"Rescore of attempt {attempt.id} failed again: {e.message}")
        return rescored


attempt_engine = AttemptStateMachine(
    store=SQLAlchemyAttemptStore(),
    catalog=QuestionCatalog(),
    countdown=CountdownScheduler(scheduler),
)
