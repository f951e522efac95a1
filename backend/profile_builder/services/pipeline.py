"""Profile completion pipeline controller.

ProfilePipeline owns the profile document, the phase machine and the
question queue for one session. The host only calls its public API:

    start(raw_text | None)      begin (None skips the upload)
    submit_answer(value | SKIPPED)
    accept_diff() / reject_diff()
    current_phase / current_question / pending_review / notices
    snapshot()                  read-only copy of the document
    subscribe(listener)         state-change events
    to_draft() / from_draft()   serialisation for an external draft store

Flow:
    source -> parse -> detect_type (+ skill question)
      -> structural_followups (queue) -> skill_assessment (queue)
      -> sector_followups (queue) -> polish (improve, diff review, score)
      -> render, or back to sector_followups while the score is low

Collaborator failures never block: the failed step contributes nothing, a
notice is recorded, and the pipeline moves on. Phase-advancing calls are
serialised; a second call while one is in flight raises PipelineBusyError.
"""

import asyncio
import copy
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from profile_builder.core.config import settings
from profile_builder.schemas.profile import empty_document, normalize_document
from profile_builder.schemas.questions import Question, Skip
from profile_builder.services.collaborators import (
    ProfileCollaborators,
    ProfileTypeResult,
    ScoreResult,
)
from profile_builder.services.diff_engine import DiffReview
from profile_builder.services.phase_machine import (
    Phase,
    PhaseStateMachine,
    should_enter_improvement_loop,
)
from profile_builder.services.pipeline_errors import (
    CollaboratorUnavailableError,
    InvalidPhaseTransitionError,
    NoPendingReviewError,
    PipelineBusyError,
)
from profile_builder.services.question_orchestrator import (
    QuestionOrchestrator,
    QueueSignal,
    skill_detection_question,
)

logger = structlog.get_logger()

Document = dict[str, Any]


# =============================================================================
# Supporting types
# =============================================================================


@dataclass(frozen=True)
class PipelineLimits:
    """Tuning values for one pipeline."""

    summary_min_length: int = 40
    followup_question_count: int = 4
    improvement_question_count: int = 2
    improvement_score_threshold: int = 80
    max_improvement_rounds: int = 2

    @classmethod
    def from_settings(cls) -> "PipelineLimits":
        return cls(
            summary_min_length=settings.summary_min_length,
            followup_question_count=settings.followup_question_count,
            improvement_question_count=settings.improvement_question_count,
            improvement_score_threshold=settings.improvement_score_threshold,
            max_improvement_rounds=settings.max_improvement_rounds,
        )


@dataclass(frozen=True)
class PipelineEvent:
    """State-change notification sent to subscribers.

    Attributes:
        kind: "state_changed", "review_pending" or "notice".
        phase: Phase at emission time.
        detail: Event-specific data (e.g. the notice text).
    """

    kind: str
    phase: Phase
    detail: dict[str, Any] = field(default_factory=dict)


PipelineListener = Callable[[PipelineEvent], None]


class PipelineDraft(BaseModel):
    """Serialisable pipeline state: document, phase and extras."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    document: dict[str, Any]
    phase: Phase
    extras: dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Controller
# =============================================================================


class ProfilePipeline:
    """Single owner of one session's document and dialogue state."""

    def __init__(
        self,
        collaborators: ProfileCollaborators,
        limits: PipelineLimits | None = None,
    ) -> None:
        self._collaborators = collaborators
        self.limits = limits or PipelineLimits.from_settings()
        self._machine = PhaseStateMachine(
            max_improvement_rounds=self.limits.max_improvement_rounds
        )
        self._orchestrator = QuestionOrchestrator(
            summary_min_length=self.limits.summary_min_length
        )
        self._document: Document = empty_document()
        self._profile_type: ProfileTypeResult | None = None
        self._pending_review: DiffReview | None = None
        self._score: ScoreResult | None = None
        self._notices: list[str] = []
        self._listeners: list[PipelineListener] = []
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Read-only surface
    # -------------------------------------------------------------------------

    @property
    def current_phase(self) -> Phase:
        return self._machine.phase

    @property
    def current_question(self) -> Question | None:
        return self._orchestrator.current()

    @property
    def pending_review(self) -> DiffReview | None:
        return self._pending_review

    @property
    def profile_type(self) -> ProfileTypeResult | None:
        return self._profile_type

    @property
    def score(self) -> ScoreResult | None:
        return self._score

    @property
    def improvement_rounds(self) -> int:
        return self._machine.improvement_rounds

    @property
    def notices(self) -> list[str]:
        return list(self._notices)

    def snapshot(self) -> Document:
        """Deep copy of the current document."""
        return copy.deepcopy(self._document)

    def dismiss_notices(self) -> None:
        self._notices.clear()

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def subscribe(self, listener: PipelineListener) -> Callable[[], None]:
        """Register a listener for state-change events.

        Returns:
            Callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str, **detail: Any) -> None:
        event = PipelineEvent(kind=kind, phase=self._machine.phase, detail=detail)
        for listener in list(self._listeners):
            listener(event)

    def _add_notice(self, message: str) -> None:
        self._notices.append(message)
        self._emit("notice", message=message)

    # -------------------------------------------------------------------------
    # Concurrency
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        if self._lock.locked():
            raise PipelineBusyError("Another pipeline step is still in progress.")
        async with self._lock:
            yield
        self._emit("state_changed")

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def start(self, raw_text: str | None = None) -> None:
        """Start the pipeline.

        Args:
            raw_text: Extracted résumé text. None skips the upload and
                starts from an empty document at detect_type.

        Raises:
            InvalidPhaseTransitionError: If the pipeline already started.
            PipelineBusyError: If another step is in flight.
        """
        async with self._exclusive():
            if self._machine.phase is not Phase.SOURCE:
                raise InvalidPhaseTransitionError("The pipeline has already started.")
            if raw_text is None:
                self._machine.skip_upload()
                self._document = empty_document()
            else:
                self._machine.next()
                self._document = await self._parse(raw_text)
                self._machine.next()
            await self._enter_structural()

    async def submit_answer(self, value: str | Skip) -> None:
        """Answer (or skip) the current question.

        Raises:
            NoPendingQuestionError: If no question is outstanding.
            AnswerValidationError: If the answer fails its format check.
                The question stays current and the document is unchanged.
            PipelineBusyError: If another step is in flight.
        """
        async with self._exclusive():
            outcome = self._orchestrator.submit(self._document, value)
            self._document = outcome.document
            if outcome.signal is not None:
                await self._handle_signal(outcome.signal)

    async def accept_diff(self) -> None:
        """Replace the document with the pending improve result.

        Raises:
            NoPendingReviewError: If no review is pending.
            PipelineBusyError: If another step is in flight.
        """
        async with self._exclusive():
            review = self._take_review()
            self._document = copy.deepcopy(review.after)
            logger.info("diff_accepted", change_count=len(review.entries))
            await self._score_and_route()

    async def reject_diff(self) -> None:
        """Discard the pending improve result, keeping the document.

        Raises:
            NoPendingReviewError: If no review is pending.
            PipelineBusyError: If another step is in flight.
        """
        async with self._exclusive():
            review = self._take_review()
            logger.info("diff_rejected", change_count=len(review.entries))
            await self._score_and_route()

    def _take_review(self) -> DiffReview:
        if self._pending_review is None:
            raise NoPendingReviewError("No improved profile is awaiting review.")
        review = self._pending_review
        self._pending_review = None
        return review

    # -------------------------------------------------------------------------
    # Phase steps
    # -------------------------------------------------------------------------

    def _collaborator_failed(self, exc: CollaboratorUnavailableError) -> None:
        logger.warning(
            "collaborator_fallback",
            operation=exc.operation,
            phase=self._machine.phase.value,
            error_type=type(exc).__name__,
        )
        self._add_notice(f"{exc} Continuing without it.")

    async def _parse(self, raw_text: str) -> Document:
        try:
            return await self._collaborators.parse_profile(raw_text)
        except CollaboratorUnavailableError as exc:
            self._collaborator_failed(exc)
            return empty_document()

    async def _enter_structural(self) -> None:
        """Run detect_type, then populate the structural queue."""
        try:
            self._profile_type = await self._collaborators.detect_profile_type(
                self.snapshot()
            )
        except CollaboratorUnavailableError as exc:
            self._collaborator_failed(exc)
            self._profile_type = None

        skill_question = None
        try:
            result = await self._collaborators.generate_skill_question(self.snapshot())
            skill_question = skill_detection_question(result.question)
        except CollaboratorUnavailableError as exc:
            self._collaborator_failed(exc)

        self._machine.next()
        signal = self._orchestrator.start_structural(self._document, skill_question)
        if signal is not None:
            await self._handle_signal(signal)

    async def _handle_signal(self, signal: QueueSignal) -> None:
        if signal is QueueSignal.STRUCTURAL_DRAINED:
            self._machine.next()
            await self._enter_skill_assessment()
        elif signal is QueueSignal.SKILL_ASSESSMENT_DRAINED:
            self._machine.next()
            await self._enter_followups(self.limits.followup_question_count)
        elif signal is QueueSignal.AI_DRAINED:
            self._machine.next()
            await self._polish()

    async def _enter_skill_assessment(self) -> None:
        if self._profile_type is None or not self._profile_type.role:
            logger.info("skill_assessment_skipped", reason="no_profile_type")
            self._orchestrator.clear()
            await self._handle_signal(QueueSignal.SKILL_ASSESSMENT_DRAINED)
            return

        try:
            items = await self._collaborators.generate_skill_assessment(
                self.snapshot(), self._profile_type
            )
        except CollaboratorUnavailableError as exc:
            self._collaborator_failed(exc)
            items = []

        signal = self._orchestrator.load_skill_assessment(items)
        if signal is not None:
            await self._handle_signal(signal)

    async def _enter_followups(self, max_count: int) -> None:
        try:
            items = await self._collaborators.generate_followup_questions(
                self.snapshot(), list(self._orchestrator.shown_texts), max_count
            )
        except CollaboratorUnavailableError as exc:
            self._collaborator_failed(exc)
            items = []

        signal = self._orchestrator.load_followups(items, max_count)
        if signal is not None:
            await self._handle_signal(signal)

    async def _polish(self) -> None:
        """Call improve and open a diff review against the pre-call snapshot."""
        before = self.snapshot()
        try:
            after = await self._collaborators.improve_profile(
                copy.deepcopy(before), self._orchestrator.collected_answers()
            )
        except CollaboratorUnavailableError as exc:
            self._collaborator_failed(exc)
            self._machine.next()
            return

        review = DiffReview.from_documents(before, after)
        if review.is_empty:
            logger.info("diff_auto_accepted", reason="no_changes")
            await self._score_and_route()
            return

        self._pending_review = review
        logger.info("diff_review_pending", change_count=len(review.entries))
        self._emit("review_pending", change_count=len(review.entries))

    async def _score_and_route(self) -> None:
        """Score the document, then loop back or finish."""
        try:
            self._score = await self._collaborators.score_profile(self.snapshot())
        except CollaboratorUnavailableError as exc:
            self._collaborator_failed(exc)
            self._score = None

        score_value = self._score.score if self._score is not None else None
        if should_enter_improvement_loop(
            score_value,
            self._machine.improvement_rounds,
            self.limits.improvement_score_threshold,
            self.limits.max_improvement_rounds,
        ):
            self._machine.re_enter_improvement_loop()
            logger.info(
                "improvement_loop_entered",
                score=score_value,
                round=self._machine.improvement_rounds,
            )
            await self._enter_followups(self.limits.improvement_question_count)
            return

        self._machine.next()

    # -------------------------------------------------------------------------
    # Drafts
    # -------------------------------------------------------------------------

    def to_draft(self) -> PipelineDraft:
        """Capture document, phase and extras for an external draft store."""
        review = self._pending_review
        return PipelineDraft(
            document=self.snapshot(),
            phase=self._machine.phase,
            extras={
                "profileType": (
                    self._profile_type.model_dump(by_alias=True)
                    if self._profile_type is not None
                    else None
                ),
                "questions": self._orchestrator.to_state(),
                "pendingReview": (
                    {"before": review.before, "after": review.after}
                    if review is not None
                    else None
                ),
                "score": self._score.model_dump(by_alias=True) if self._score else None,
                "improvementRounds": self._machine.improvement_rounds,
                "notices": list(self._notices),
            },
        )

    @classmethod
    def from_draft(
        cls,
        draft: PipelineDraft,
        collaborators: ProfileCollaborators,
        limits: PipelineLimits | None = None,
    ) -> "ProfilePipeline":
        """Rebuild a pipeline from a draft produced by to_draft()."""
        pipeline = cls(collaborators, limits)
        extras = draft.extras

        pipeline._document = normalize_document(draft.document)
        pipeline._machine = PhaseStateMachine(
            phase=draft.phase,
            improvement_rounds=int(extras.get("improvementRounds", 0)),
            max_improvement_rounds=pipeline.limits.max_improvement_rounds,
        )
        pipeline._orchestrator = QuestionOrchestrator.from_state(
            extras.get("questions") or {},
            summary_min_length=pipeline.limits.summary_min_length,
        )
        if extras.get("profileType"):
            pipeline._profile_type = ProfileTypeResult.model_validate(extras["profileType"])
        if extras.get("score"):
            pipeline._score = ScoreResult.model_validate(extras["score"])
        review = extras.get("pendingReview")
        if review:
            pipeline._pending_review = DiffReview.from_documents(
                normalize_document(review["before"]),
                normalize_document(review["after"]),
            )
        pipeline._notices = list(extras.get("notices", []))

        logger.info("pipeline_restored", phase=draft.phase.value)
        return pipeline
