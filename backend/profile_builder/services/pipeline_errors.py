"""Profile pipeline error taxonomy.

Error Handling Strategy:
    - Answer fails its format check: the question stays at the head of the
      queue, the document is untouched, the user is re-prompted
    - Collaborator unreachable, timed out or returned garbage: the phase
      falls back to an empty queue and a dismissible notice is recorded
    - Malformed document path: programmer error, never caught

Key Principle: Fail-forward. No collaborator failure blocks the pipeline and
no error leaves the profile document partially written.
"""

# =============================================================================
# Base
# =============================================================================


class ProfileBuilderError(Exception):
    """Base class for pipeline domain errors."""

    pass


# =============================================================================
# User-recoverable
# =============================================================================


class AnswerValidationError(ProfileBuilderError):
    """An answer failed its question's declared format check.

    Attributes:
        question_id: Id of the question that stays at the head of the queue.
    """

    def __init__(self, question_id: str, message: str) -> None:
        """Initialize AnswerValidationError.

        Args:
            question_id: Id of the question being answered.
            message: User-facing reason, shown inline against the question.
        """
        super().__init__(message)
        self.question_id = question_id


# =============================================================================
# Collaborator failures
# =============================================================================


class CollaboratorUnavailableError(ProfileBuilderError):
    """An external collaborator failed or timed out.

    Attributes:
        operation: Collaborator operation name (e.g. "improve").
    """

    def __init__(self, operation: str, message: str) -> None:
        """Initialize CollaboratorUnavailableError.

        Args:
            operation: Collaborator operation that failed.
            message: Error description (safe to show as a notice).
        """
        super().__init__(message)
        self.operation = operation


class MalformedCollaboratorResponseError(CollaboratorUnavailableError):
    """A collaborator answered with missing or mistyped fields.

    Handled exactly like CollaboratorUnavailableError.
    """

    pass


# =============================================================================
# Programmer / sequencing errors
# =============================================================================


class InvalidPathError(ProfileBuilderError, ValueError):
    """A document path is syntactically invalid."""

    def __init__(self, path: str, reason: str = "malformed path") -> None:
        super().__init__(f"Invalid document path '{path}': {reason}")
        self.path = path


class InvalidPhaseTransitionError(ProfileBuilderError):
    """A phase transition outside the permitted sequence was requested."""

    pass


class PipelineBusyError(ProfileBuilderError):
    """A phase-advancing call arrived while another was still in flight."""

    pass


class NoPendingQuestionError(ProfileBuilderError):
    """An answer was submitted with no question outstanding."""

    pass


class NoPendingReviewError(ProfileBuilderError):
    """Accept/reject was requested with no improve diff awaiting review."""

    pass
