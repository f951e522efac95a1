"""Phase sequencing for the profile pipeline.

Forward order:

    source -> parse -> detect_type -> structural_followups
           -> skill_assessment -> sector_followups -> polish -> render

Transitions are strictly forward (next) or strictly backward (prev). Two
exceptions exist:
- skip_upload: source -> detect_type, bypassing parse
- re_enter_improvement_loop: polish -> sector_followups, driven by the
  score and bounded by a maximum number of rounds

render is terminal.
"""

from enum import Enum

import structlog

from profile_builder.services.pipeline_errors import InvalidPhaseTransitionError

logger = structlog.get_logger()


class Phase(str, Enum):
    """Pipeline phases, in forward order."""

    SOURCE = "source"
    PARSE = "parse"
    DETECT_TYPE = "detect_type"
    STRUCTURAL_FOLLOWUPS = "structural_followups"
    SKILL_ASSESSMENT = "skill_assessment"
    SECTOR_FOLLOWUPS = "sector_followups"
    POLISH = "polish"
    RENDER = "render"


PHASE_ORDER: tuple[Phase, ...] = tuple(Phase)


def should_enter_improvement_loop(
    score: int | None, rounds_completed: int, threshold: int, max_rounds: int
) -> bool:
    """True when a scored document should get another improvement round.

    Args:
        score: Latest score (None when scoring failed).
        rounds_completed: Improvement rounds already run.
        threshold: Scores below this trigger a round.
        max_rounds: Upper bound on rounds.
    """
    if score is None:
        return False
    return score < threshold and rounds_completed < max_rounds


class PhaseStateMachine:
    """Holds the current phase and enforces the permitted transitions."""

    def __init__(
        self,
        phase: Phase = Phase.SOURCE,
        improvement_rounds: int = 0,
        max_improvement_rounds: int = 2,
    ) -> None:
        self.phase = phase
        self.improvement_rounds = improvement_rounds
        self.max_improvement_rounds = max_improvement_rounds

    @property
    def is_terminal(self) -> bool:
        return self.phase is Phase.RENDER

    def _move(self, target: Phase, trigger: str) -> Phase:
        logger.info(
            "phase_transition",
            from_phase=self.phase.value,
            to_phase=target.value,
            trigger=trigger,
        )
        self.phase = target
        return target

    def next(self) -> Phase:
        """Advance one phase.

        Raises:
            InvalidPhaseTransitionError: If already at render.
        """
        if self.is_terminal:
            raise InvalidPhaseTransitionError("The render phase is terminal.")
        index = PHASE_ORDER.index(self.phase)
        return self._move(PHASE_ORDER[index + 1], "next")

    def prev(self) -> Phase:
        """Step back one phase.

        Raises:
            InvalidPhaseTransitionError: If at source or render.
        """
        if self.phase is Phase.SOURCE:
            raise InvalidPhaseTransitionError("There is no phase before source.")
        if self.is_terminal:
            raise InvalidPhaseTransitionError("The render phase is terminal.")
        index = PHASE_ORDER.index(self.phase)
        return self._move(PHASE_ORDER[index - 1], "prev")

    def skip_upload(self) -> Phase:
        """Bypass parse when no source document is provided.

        Raises:
            InvalidPhaseTransitionError: If not at source.
        """
        if self.phase is not Phase.SOURCE:
            raise InvalidPhaseTransitionError("Upload can only be skipped from the source phase.")
        return self._move(Phase.DETECT_TYPE, "skip_upload")

    def can_re_enter_improvement_loop(self) -> bool:
        return (
            self.phase is Phase.POLISH
            and self.improvement_rounds < self.max_improvement_rounds
        )

    def re_enter_improvement_loop(self) -> Phase:
        """Go back from polish to sector follow-ups for another round.

        Raises:
            InvalidPhaseTransitionError: If not at polish or the round limit
                has been reached.
        """
        if self.phase is not Phase.POLISH:
            raise InvalidPhaseTransitionError(
                "The improvement loop can only be entered from the polish phase."
            )
        if self.improvement_rounds >= self.max_improvement_rounds:
            raise InvalidPhaseTransitionError(
                f"Improvement round limit ({self.max_improvement_rounds}) reached."
            )
        self.improvement_rounds += 1
        return self._move(Phase.SECTOR_FOLLOWUPS, "improvement_loop")

