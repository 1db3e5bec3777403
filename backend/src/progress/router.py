"""Class progression API endpoints."""

import logging

from fastapi import APIRouter, Depends, Query, status

from src.auth import CurrentAuth
from src.middleware.security import submission_route_limit
from src.progress.controller import ASSIGNMENT_SUBMITTED_MESSAGE, ProgressionController, VideoEndedResult
from src.progress.dependencies import Controller
from src.progress.models import ClassTimer
from src.progress.schemas import (
    AnswersRequest,
    AssessmentResultResponse,
    AssessmentSubmitRequest,
    AssignmentSubmissionResponse,
    AssignmentSubmitRequest,
    AssignmentSubmitResponse,
    AutoCompleteRequest,
    AutoCompleteResponse,
    ClassAssessmentResultsResponse,
    ClassTimerExtendRequest,
    ClassTimerResponse,
    ClassTimerSetRequest,
    ProgressOverviewResponse,
    SubmissionResponse,
    TimerStatusResponse,
    VideoProgressResponse,
    VideoWatchedRequest,
    VideoWatchedResponse,
)
from src.progress.timers import TimerView


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/progress", tags=["progress"])


def _timer_response(controller: ProgressionController, timer: TimerView | ClassTimer) -> ClassTimerResponse:
    view = timer if isinstance(timer, TimerView) else TimerView.of(timer, controller.clock.now())
    return ClassTimerResponse.model_validate(view)


def _video_watched_response(controller: ProgressionController, result: VideoEndedResult) -> VideoWatchedResponse:
    return VideoWatchedResponse(
        class_id=result.class_id,
        progress=VideoProgressResponse.model_validate(result.record),
        already_watched=result.already_watched,
        is_final_class=result.is_final_class,
        next_class_timer=(
            _timer_response(controller, result.next_class_timer) if result.next_class_timer is not None else None
        ),
    )


@router.get("")
async def get_progress_overview(auth: CurrentAuth, controller: Controller) -> ProgressOverviewResponse:
    """Get every class with progress and current lock state."""
    overview = await controller.get_progress_overview(auth.user_id)
    return ProgressOverviewResponse.model_validate(overview)


@router.post("/video-watched")
async def mark_video_watched(
    request: VideoWatchedRequest,
    auth: CurrentAuth,
    controller: Controller,
) -> VideoWatchedResponse:
    """Record a finished video and arm the next class's timer."""
    result = await controller.video_ended(auth.user_id, request.class_id, request.video_id)
    return _video_watched_response(controller, result)


@router.get("/video-watched")
async def list_watched_videos(
    auth: CurrentAuth,
    controller: Controller,
    class_id: int | None = Query(None, alias="classId", gt=0),
    video_id: int | None = Query(None, alias="videoId", gt=0),
) -> list[VideoProgressResponse]:
    """List watched videos, optionally for one class or one video."""
    records = await controller.list_watched(auth.user_id, class_id=class_id, video_id=video_id)
    return [VideoProgressResponse.model_validate(record) for record in records]


@router.post("/assessments/submit", dependencies=[Depends(submission_route_limit)])
async def submit_class_assessment(
    request: AssessmentSubmitRequest,
    auth: CurrentAuth,
    controller: Controller,
) -> SubmissionResponse:
    """Submit answers for a class's assessment."""
    outcome = await controller.submit_assessment(auth.user_id, request.class_id, request.answers)
    return SubmissionResponse.model_validate(outcome)


@router.post("/assessments/{assessment_id}/submit", dependencies=[Depends(submission_route_limit)])
async def submit_assessment(
    assessment_id: int,
    request: AnswersRequest,
    auth: CurrentAuth,
    controller: Controller,
) -> SubmissionResponse:
    """Submit answers for a specific assessment."""
    outcome = await controller.submit_assessment_by_id(auth.user_id, assessment_id, request.answers)
    return SubmissionResponse.model_validate(outcome)


@router.get("/assessments")
async def list_assessment_results(auth: CurrentAuth, controller: Controller) -> list[ClassAssessmentResultsResponse]:
    """Latest result of every assessment, grouped by class."""
    results = await controller.list_assessment_results(auth.user_id)
    return [ClassAssessmentResultsResponse.model_validate(item) for item in results]


@router.get("/assessments/{assessment_id}")
async def get_assessment_result(
    assessment_id: int,
    auth: CurrentAuth,
    controller: Controller,
) -> AssessmentResultResponse:
    result = await controller.get_assessment_result(auth.user_id, assessment_id)
    return AssessmentResultResponse.model_validate(result)


@router.post("/assignments", dependencies=[Depends(submission_route_limit)])
async def submit_assignment(
    request: AssignmentSubmitRequest,
    auth: CurrentAuth,
    controller: Controller,
) -> AssignmentSubmitResponse:
    """Submit a written answer to an essay resource."""
    submission = await controller.submit_assignment(
        auth.user_id,
        request.class_id,
        request.resource_id,
        content=request.content,
        text=request.text,
    )
    return AssignmentSubmitResponse(
        submission_id=submission.id,
        resource_id=submission.resource_id,
        message=ASSIGNMENT_SUBMITTED_MESSAGE,
        submitted_at=submission.submitted_at,
    )


@router.get("/assignments")
async def list_assignments(
    auth: CurrentAuth,
    controller: Controller,
    class_id: int | None = Query(None, alias="classId", gt=0),
) -> list[AssignmentSubmissionResponse]:
    submissions = await controller.list_assignments(auth.user_id, class_id)
    return [AssignmentSubmissionResponse.model_validate(item) for item in submissions]


@router.get("/class-timers")
async def list_class_timers(
    auth: CurrentAuth,
    controller: Controller,
    class_id: int | None = Query(None, alias="classId", gt=0),
) -> list[ClassTimerResponse]:
    views = await controller.timer_service.list_timers(auth.user_id, class_id)
    return [_timer_response(controller, view) for view in views]


@router.post("/class-timers")
async def set_class_timer(
    request: ClassTimerSetRequest,
    auth: CurrentAuth,
    controller: Controller,
) -> ClassTimerResponse:
    """Create or overwrite a class timer."""
    timer = await controller.timer_service.set_timer(
        auth.user_id,
        request.class_id,
        expires_at=request.timer_expires_at,
        active=request.timer_active,
    )
    return _timer_response(controller, timer)


@router.get("/class-timers/status")
async def class_timer_status(
    auth: CurrentAuth,
    controller: Controller,
    cleanup: bool = Query(False, description="Flip expired timers inactive"),
) -> TimerStatusResponse:
    """Split active timers into running and expired."""
    result = await controller.timer_service.status(auth.user_id, cleanup=cleanup)
    return TimerStatusResponse(
        active_timers=[_timer_response(controller, view) for view in result.active],
        expired_timers=[_timer_response(controller, view) for view in result.expired],
        total_active=result.total_active,
        total_expired=result.total_expired,
        cleaned_up=result.cleaned_up,
    )


@router.post("/class-timers/auto-complete")
async def auto_complete_expired(
    request: AutoCompleteRequest,
    auth: CurrentAuth,
    controller: Controller,
) -> AutoCompleteResponse:
    """Record 0% attempts for untouched assessments behind expired timers."""
    report = await controller.auto_complete_expired(auth.user_id, request.class_id)
    return AutoCompleteResponse.model_validate(report)


@router.put("/class-timers/{class_id}")
async def extend_class_timer(
    class_id: int, request: ClassTimerExtendRequest, auth: CurrentAuth, controller: Controller
) -> ClassTimerResponse:
    timer = await controller.timer_service.extend_timer(
        auth.user_id,
        class_id,
        additional_seconds=request.additional_seconds,
        new_duration_seconds=request.new_duration_seconds,
    )
    return _timer_response(controller, timer)


@router.delete("/class-timers/{class_id}", status_code=status.HTTP_200_OK)
async def deactivate_class_timer(class_id: int, auth: CurrentAuth, controller: Controller) -> ClassTimerResponse:
    """Stop a class timer."""
    timer = await controller.timer_service.deactivate(auth.user_id, class_id)
    return _timer_response(controller, timer)
