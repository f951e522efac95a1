"""Request and response schemas for the pipeline API."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from profile_builder.services.pipeline import PipelineDraft, ProfilePipeline


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreatePipelineRequest(_ApiModel):
    """Start a pipeline. Omit raw_text to skip the upload."""

    raw_text: str | None = None


class AnswerRequest(_ApiModel):
    """Answer the current question, or skip it."""

    value: str | None = None
    skip: bool = False

    @model_validator(mode="after")
    def value_or_skip(self) -> "AnswerRequest":
        if not self.skip and self.value is None:
            raise ValueError("Provide a value or set skip to true.")
        return self


class ToggleChangeRequest(_ApiModel):
    """Flip the selection of one change in the pending diff."""

    path: str = Field(min_length=1)


class RestorePipelineRequest(_ApiModel):
    """Rehydrate a pipeline from a saved draft."""

    draft: PipelineDraft


class PipelineState(_ApiModel):
    """Snapshot of a pipeline for the host UI."""

    id: str
    phase: str
    current_question: dict[str, Any] | None = None
    document: dict[str, Any]
    pending_diff: dict[str, Any] | None = None
    score: dict[str, Any] | None = None
    profile_type: dict[str, Any] | None = None
    improvement_rounds: int = 0
    notices: list[str] = Field(default_factory=list)

    @classmethod
    def from_pipeline(cls, pipeline_id: str, pipeline: ProfilePipeline) -> "PipelineState":
        question = pipeline.current_question
        review = pipeline.pending_review
        return cls(
            id=pipeline_id,
            phase=pipeline.current_phase.value,
            current_question=(
                question.model_dump(by_alias=True, mode="json") if question else None
            ),
            document=pipeline.snapshot(),
            pending_diff=review.to_dict() if review is not None else None,
            score=(
                pipeline.score.model_dump(by_alias=True) if pipeline.score else None
            ),
            profile_type=(
                pipeline.profile_type.model_dump(by_alias=True)
                if pipeline.profile_type
                else None
            ),
            improvement_rounds=pipeline.improvement_rounds,
            notices=pipeline.notices,
        )
