from fastapi import APIRouter, Depends, status

from assessment.core.constants import RoleEnum
from assessment.schemas.exam_attempt import (
    AttemptResult,
    AttemptSession,
    ExamResultsSummary,
    ManualGradeRequest,
    SaveAnswersRequest,
    SaveAnswersResult,
)
from assessment.schemas.response import APIResponse
from assessment.schemas.user import CurrentUser
from assessment.services.exam_attempt import AttemptStateMachine
from assessment.utils import deps
from assessment.utils.permission import PermissionHelper as permission_helper

router = APIRouter()


async def _owned_attempt(engine: AttemptStateMachine, attempt_id: int, user: CurrentUser):
    attempt = await engine.get_attempt(attempt_id)
    permission_helper.require_attempt_owner(user, attempt)
    return attempt


@router.post("/{exam_id}/attempts", response_model=APIResponse[AttemptSession], status_code=status.HTTP_201_CREATED)
async def start_exam_attempt(
    *,
    exam_id: int,
    user: CurrentUser = Depends(deps.get_current_user),
    engine: AttemptStateMachine = Depends(deps.get_attempt_engine)
):
    permission_helper.require_student(user)
    session = await engine.start_attempt(exam_id, student_id=user.id)
    return APIResponse(message="Exam attempt started successfully", data=session)


@router.get("/{exam_id}/results", response_model=APIResponse[ExamResultsSummary])
async def get_exam_results(
    *,
    exam_id: int,
    user: CurrentUser = Depends(deps.get_current_user),
    engine: AttemptStateMachine = Depends(deps.get_attempt_engine)
):
    summary = await engine.results_summary(exam_id, student_id=user.id)
    return APIResponse(message="Exam results retrieved successfully", data=summary)


@router.get("/attempts/{attempt_id}", response_model=APIResponse[AttemptSession])
async def resume_exam_attempt(
    *,
    attempt_id: int,
    user: CurrentUser = Depends(deps.get_current_user),
    engine: AttemptStateMachine = Depends(deps.get_attempt_engine)
):
    await _owned_attempt(engine, attempt_id, user)
    session = await engine.resume_attempt(attempt_id)
    return APIResponse(message="Exam attempt retrieved successfully", data=session)


@router.put("/attempts/{attempt_id}/answers", response_model=APIResponse[SaveAnswersResult])
async def save_answers(
    *,
    attempt_id: int,
    answers_in: SaveAnswersRequest,
    user: CurrentUser = Depends(deps.get_current_user),
    engine: AttemptStateMachine = Depends(deps.get_attempt_engine)
):
    await _owned_attempt(engine, attempt_id, user)
    result = await engine.save_answers(attempt_id, {a.question_id: a.answer_text for a in answers_in.answers})
    if not result.accepted:
        message = "Exam attempt is already finalized"
    elif not result.flushed:
        message = "Answers kept, saving will be retried"
    else:
        message = "Answers saved successfully"
    return APIResponse(message=message, data=result)


@router.post("/attempts/{attempt_id}/submit", response_model=APIResponse[AttemptResult])
async def submit_exam(
    *,
    attempt_id: int,
    user: CurrentUser = Depends(deps.get_current_user),
    engine: AttemptStateMachine = Depends(deps.get_attempt_engine)
):
    await _owned_attempt(engine, attempt_id, user)
    outcome = await engine.submit(attempt_id)
    result = await engine.result(attempt_id)
    message = "Exam submitted successfully" if outcome.applied else "Exam attempt was already finalized"
    return APIResponse(message=message, data=result)


@router.post("/attempts/{attempt_id}/abandon", response_model=APIResponse[AttemptResult])
async def abandon_exam(
    *,
    attempt_id: int,
    user: CurrentUser = Depends(deps.get_current_user),
    engine: AttemptStateMachine = Depends(deps.get_attempt_engine)
):
    attempt = await engine.get_attempt(attempt_id)
    permission_helper.require_attempt_view_permission(user, attempt)
    outcome = await engine.abandon(attempt_id)
    message = "Exam attempt abandoned" if outcome.applied else "Exam attempt was already finalized"
    return APIResponse(message=message, data=await engine.result(attempt_id))


@router.get("/attempts/{attempt_id}/result", response_model=APIResponse[AttemptResult])
async def get_attempt_result(
    *,
    attempt_id: int,
    user: CurrentUser = Depends(deps.get_current_user),
    engine: AttemptStateMachine = Depends(deps.get_attempt_engine)
):
    attempt = await engine.get_attempt(attempt_id)
    permission_helper.require_attempt_view_permission(user, attempt)
    return APIResponse(message="Exam result retrieved successfully", data=await engine.result(attempt_id))


@router.post("/attempts/{attempt_id}/answers/{question_id}/grade", response_model=APIResponse[AttemptResult])
async def grade_answer(
    *,
    attempt_id: int,
    question_id: int,
    grade_in: ManualGradeRequest,
    user: CurrentUser = Depends(deps.require_role(RoleEnum.TEACHER, RoleEnum.ADMIN)),
    engine: AttemptStateMachine = Depends(deps.get_attempt_engine)
):
    result = await engine.grade_answer(attempt_id, question_id, grade_in.points, grader_id=user.id)
    return APIResponse(message="Answer graded successfully", data=result)
