"""Pipelines API router.

Endpoints:
- POST /                    Start a pipeline (rawText omitted = skip upload)
- POST /restore             Rehydrate a pipeline from a draft
- GET  /{id}                Current state
- DELETE /{id}              Discard a pipeline
- POST /{id}/answers        Answer or skip the current question
- POST /{id}/notices/dismiss Clear collaborator notices
- GET  /{id}/diff           Pending improve diff, grouped by section
- POST /{id}/diff/toggle    Flip selection of one change
- POST /{id}/diff/accept    Accept the improved profile
- POST /{id}/diff/reject    Keep the current profile
- GET  /{id}/draft          Serialisable draft
"""

from collections.abc import Awaitable
from typing import Any

import structlog
from fastapi import APIRouter, Response, status

from profile_builder.api.deps import Collaborators, Registry
from profile_builder.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from profile_builder.core.responses import DataResponse
from profile_builder.schemas.pipeline import (
    AnswerRequest,
    CreatePipelineRequest,
    PipelineState,
    RestorePipelineRequest,
    ToggleChangeRequest,
)
from profile_builder.schemas.questions import SKIPPED
from profile_builder.services.pipeline import ProfilePipeline
from profile_builder.services.pipeline_errors import (
    AnswerValidationError,
    InvalidPhaseTransitionError,
    NoPendingQuestionError,
    NoPendingReviewError,
    PipelineBusyError,
)
from profile_builder.services.session_store import PipelineRegistry

logger = structlog.get_logger()

router = APIRouter()

_RESOURCE = "Pipeline"


def _get_pipeline(registry: PipelineRegistry, pipeline_id: str) -> ProfilePipeline:
    pipeline = registry.get(pipeline_id)
    if pipeline is None:
        raise NotFoundError(_RESOURCE, pipeline_id)
    return pipeline


async def _run_step(step: Awaitable[None]) -> None:
    """Await a pipeline step, translating domain errors to API errors."""
    try:
        await step
    except AnswerValidationError as exc:
        raise ValidationError(
            message=str(exc),
            details=[{"field": "value", "question_id": exc.question_id}],
        ) from exc
    except PipelineBusyError as exc:
        raise ConflictError(code="PIPELINE_BUSY", message=str(exc)) from exc
    except (
        NoPendingQuestionError,
        NoPendingReviewError,
        InvalidPhaseTransitionError,
    ) as exc:
        raise InvalidStateError(str(exc)) from exc


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_pipeline(
    request: CreatePipelineRequest,
    collaborators: Collaborators,
    registry: Registry,
) -> DataResponse[PipelineState]:
    """Create a pipeline and run it up to the first question.

    The pipeline is registered only once start() has returned, so a failed
    start leaves nothing behind.

    Returns:
        DataResponse with the new pipeline's state.
    """
    pipeline = ProfilePipeline(collaborators)
    await _run_step(pipeline.start(request.raw_text))
    pipeline_id = registry.register(pipeline)
    return DataResponse(data=PipelineState.from_pipeline(pipeline_id, pipeline))


@router.post("/restore", status_code=status.HTTP_201_CREATED)
async def restore_pipeline(
    request: RestorePipelineRequest,
    collaborators: Collaborators,
    registry: Registry,
) -> DataResponse[PipelineState]:
    """Rehydrate a pipeline from a draft under a new id.

    Raises:
        ValidationError: If the draft extras are malformed.
    """
    try:
        pipeline = ProfilePipeline.from_draft(request.draft, collaborators)
    except (KeyError, TypeError, ValueError) as exc:  # pydantic errors are ValueErrors
        logger.warning("draft_restore_failed", error=str(exc)[:200])
        raise ValidationError(message="The draft could not be restored.") from exc
    pipeline_id = registry.register(pipeline)
    return DataResponse(data=PipelineState.from_pipeline(pipeline_id, pipeline))


@router.get("/{pipeline_id}")
async def get_pipeline(pipeline_id: str, registry: Registry) -> DataResponse[PipelineState]:
    """Current phase, question, document, pending diff and notices."""
    pipeline = _get_pipeline(registry, pipeline_id)
    return DataResponse(data=PipelineState.from_pipeline(pipeline_id, pipeline))


@router.delete("/{pipeline_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pipeline(pipeline_id: str, registry: Registry) -> Response:
    """Discard a pipeline and its in-memory state.

    Returns:
        204 No Content on success.

    Raises:
        NotFoundError: If no pipeline has the id.
    """
    if not registry.remove(pipeline_id):
        raise NotFoundError(_RESOURCE, pipeline_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{pipeline_id}/answers")
async def submit_answer(
    pipeline_id: str,
    request: AnswerRequest,
    registry: Registry,
) -> DataResponse[PipelineState]:
    """Answer or skip the current question.

    Raises:
        ValidationError: If the answer fails its format check.
        InvalidStateError: If no question is outstanding.
        ConflictError: If another step is still running.
    """
    pipeline = _get_pipeline(registry, pipeline_id)
    value = SKIPPED if request.skip else (request.value or "")
    await _run_step(pipeline.submit_answer(value))
    return DataResponse(data=PipelineState.from_pipeline(pipeline_id, pipeline))


@router.post("/{pipeline_id}/notices/dismiss")
async def dismiss_notices(pipeline_id: str, registry: Registry) -> DataResponse[PipelineState]:
    """Clear the collaborator-failure notices shown to the user."""
    pipeline = _get_pipeline(registry, pipeline_id)
    pipeline.dismiss_notices()
    return DataResponse(data=PipelineState.from_pipeline(pipeline_id, pipeline))


@router.get("/{pipeline_id}/diff")
async def get_diff(pipeline_id: str, registry: Registry) -> DataResponse[dict[str, Any]]:
    """Pending improve diff grouped by section.

    Raises:
        NotFoundError: If no diff is awaiting review.
    """
    pipeline = _get_pipeline(registry, pipeline_id)
    review = pipeline.pending_review
    if review is None:
        raise NotFoundError("Pending diff")
    return DataResponse(data=review.to_dict())


@router.post("/{pipeline_id}/diff/toggle")
async def toggle_change(
    pipeline_id: str,
    request: ToggleChangeRequest,
    registry: Registry,
) -> DataResponse[dict[str, Any]]:
    """Flip the selection of one change.

    Raises:
        InvalidStateError: If no diff is awaiting review.
        ValidationError: If the diff has no change at the path.
    """
    pipeline = _get_pipeline(registry, pipeline_id)
    review = pipeline.pending_review
    if review is None:
        raise InvalidStateError("No improved profile is awaiting review.")
    try:
        review.toggle(request.path)
    except KeyError as exc:
        raise ValidationError(
            message=f"No change at path '{request.path}'.",
            details=[{"field": "path", "error": "UNKNOWN_PATH"}],
        ) from exc
    return DataResponse(data=review.to_dict())


@router.post("/{pipeline_id}/diff/accept")
async def accept_diff(pipeline_id: str, registry: Registry) -> DataResponse[PipelineState]:
    """Accept the pending improved profile."""
    pipeline = _get_pipeline(registry, pipeline_id)
    await _run_step(pipeline.accept_diff())
    return DataResponse(data=PipelineState.from_pipeline(pipeline_id, pipeline))


@router.post("/{pipeline_id}/diff/reject")
async def reject_diff(pipeline_id: str, registry: Registry) -> DataResponse[PipelineState]:
    """Reject the pending improved profile; the document stays as it was."""
    pipeline = _get_pipeline(registry, pipeline_id)
    await _run_step(pipeline.reject_diff())
    return DataResponse(data=PipelineState.from_pipeline(pipeline_id, pipeline))


@router.get("/{pipeline_id}/draft")
async def get_draft(pipeline_id: str, registry: Registry) -> DataResponse[dict[str, Any]]:
    """Serialisable draft for an external draft store."""
    pipeline = _get_pipeline(registry, pipeline_id)
    return DataResponse(data=pipeline.to_draft().model_dump(by_alias=True, mode="json"))
