"""Question queue for the dialogue phases of the profile pipeline.

Decides which questions are outstanding and applies answers one at a time.

Queue sources:
1. Structural rules, re-evaluated against the current document after every
   answer, in fixed order: name, email, location, phone, summary,
   experience (new entry, still-current, location fix), education,
   languages. Each rule has a stable id; an id answered or skipped in this
   phase is never asked again.
2. One skill question from the skill-detection collaborator, pinned to the
   front of the structural queue.
3. Skill-assessment questions, replacing the queue wholesale.
4. AI follow-up questions, replacing the queue wholesale. Typo corrections
   come first and do not count against the cap; every shown text is
   remembered so a later batch never repeats it.

Each answer removes exactly the head of the queue. When the queue empties
the orchestrator reports a drain signal specific to the queue's mode.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from profile_builder.core.config import settings
from profile_builder.schemas.questions import (
    SKIPPED,
    DelimitedListQuestion,
    FreeformQuestion,
    Question,
    QuestionSource,
    ScalarQuestion,
    SkillRatingQuestion,
    Skip,
    StructuredCompositeQuestion,
    question_list_adapter,
)
from profile_builder.services.answer_application import apply_answer
from profile_builder.services.answer_parsing import humanize_key
from profile_builder.services.collaborators import (
    TYPO_CORRECTION_CATEGORY,
    FollowupQuestionItem,
    SkillAssessmentItem,
)
from profile_builder.services.path_mutator import get_value
from profile_builder.services.pipeline_errors import NoPendingQuestionError

logger = structlog.get_logger()

Document = dict[str, Any]

_PLACEHOLDER_LOCATIONS = frozenset(
    {"", "n/a", "na", "unknown", "-", "tbd", "none", "location"}
)

SKILL_DETECTION_QUESTION_ID = "skill.detected"


class QueueMode(str, Enum):
    """Which source currently owns the queue."""

    IDLE = "idle"
    STRUCTURAL = "structural"
    SKILL_ASSESSMENT = "skillAssessment"
    AI_FOLLOWUP = "aiFollowup"


class QueueSignal(str, Enum):
    """Reported when a queue empties; each leads to a different next phase."""

    STRUCTURAL_DRAINED = "structuralDrained"
    SKILL_ASSESSMENT_DRAINED = "skillAssessmentDrained"
    AI_DRAINED = "aiDrained"


_DRAIN_SIGNALS: dict[QueueMode, QueueSignal] = {
    QueueMode.STRUCTURAL: QueueSignal.STRUCTURAL_DRAINED,
    QueueMode.SKILL_ASSESSMENT: QueueSignal.SKILL_ASSESSMENT_DRAINED,
    QueueMode.AI_FOLLOWUP: QueueSignal.AI_DRAINED,
}


@dataclass
class AnswerOutcome:
    """Result of submitting one answer.

    Attributes:
        document: Document after the answer (the input when nothing was written).
        question: The question that was answered and removed.
        skipped: True if the answer was a skip.
        signal: Drain signal when the queue is now empty, else None.
    """

    document: Document
    question: Question
    skipped: bool
    signal: QueueSignal | None


# =============================================================================
# Structural rules
# =============================================================================


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _personal_rules(doc: Document) -> list[Question]:
    questions: list[Question] = []
    if _is_blank(get_value(doc, "personalInfo.name")):
        questions.append(
            ScalarQuestion(
                id="personal.name",
                prompt="What is your full name?",
                target_path="personalInfo.name",
            )
        )
    if _is_blank(get_value(doc, "personalInfo.email")):
        questions.append(
            ScalarQuestion(
                id="personal.email",
                prompt="What email address should employers use to reach you?",
                target_path="personalInfo.email",
                value_format="email",
            )
        )
    if _is_blank(get_value(doc, "personalInfo.location")):
        questions.append(
            ScalarQuestion(
                id="personal.location",
                prompt="Where are you based (city, country)?",
                target_path="personalInfo.location",
            )
        )
    if _is_blank(get_value(doc, "personalInfo.phone")):
        questions.append(
            ScalarQuestion(
                id="personal.phone",
                prompt="What phone number can employers call?",
                target_path="personalInfo.phone",
            )
        )
    return questions


def _summary_rule(doc: Document, summary_min_length: int) -> list[Question]:
    summary = get_value(doc, "summary", "")
    if isinstance(summary, str) and len(summary.strip()) >= summary_min_length:
        return []
    return [
        ScalarQuestion(
            id="summary",
            prompt=(
                "Describe yourself professionally in two or three sentences: "
                "what you do, your experience, and what you are looking for."
            ),
            target_path="summary",
        )
    ]


def _experience_rules(doc: Document, asked_ids: frozenset[str]) -> list[Question]:
    entries = get_value(doc, "experience", []) or []
    if not entries:
        return [
            StructuredCompositeQuestion(
                id="experience.new",
                prompt="Tell us about your most recent job: title, company, location and dates.",
                hint="e.g. Software Engineer at Acme, Berlin, 2020 - Present",
                target_path="experience",
                composite="experience",
            )
        ]

    questions: list[Question] = []
    latest = entries[0]
    if _is_blank(latest.get("endDate")):
        title = latest.get("title") or "your role"
        company = latest.get("company") or "your latest employer"
        questions.append(
            ScalarQuestion(
                id="experience.current",
                prompt=f"Are you still working as {title} at {company}?",
                target_path="experience[0].endDate",
                choices=["Yes", "No"],
                choice_values={"Yes": "Present", "No": None},
            )
        )

    for index, entry in enumerate(entries):
        location = entry.get("location")
        if isinstance(location, str) and location.strip().casefold() not in _PLACEHOLDER_LOCATIONS:
            continue
        question_id = f"experience.{index}.location"
        if question_id in asked_ids:
            continue
        title = entry.get("title") or "this role"
        company = entry.get("company") or "this employer"
        questions.append(
            ScalarQuestion(
                id=question_id,
                prompt=f"Where was your role as {title} at {company} based?",
                target_path=f"experience[{index}].location",
            )
        )
        break

    return questions


def _education_rule(doc: Document) -> list[Question]:
    if get_value(doc, "education", []):
        return []
    return [
        StructuredCompositeQuestion(
            id="education.new",
            prompt="What is your highest degree or qualification, and where and when did you earn it?",
            hint="e.g. BSc Computer Science - MIT, 2015 - 2019",
            target_path="education",
            composite="education",
        )
    ]


def _languages_rule(doc: Document) -> list[Question]:
    if get_value(doc, "languages", []):
        return []
    return [
        DelimitedListQuestion(
            id="languages",
            prompt="Which languages do you speak?",
            hint="Separate with commas, e.g. English, Spanish",
            target_path="languages",
            item_field="language",
        )
    ]


def structural_questions(
    doc: Document,
    summary_min_length: int | None = None,
    asked_ids: set[str] | frozenset[str] = frozenset(),
) -> list[Question]:
    """Evaluate every structural rule against the document.

    Args:
        doc: Current profile document.
        summary_min_length: Summaries shorter than this are re-asked.
            Defaults to settings.
        asked_ids: Rule ids already answered or skipped. The location fix
            moves on to the next placeholder entry past these.

    Returns:
        Questions in fixed rule order. Rules that are satisfied contribute
        nothing.
    """
    min_length = (
        settings.summary_min_length if summary_min_length is None else summary_min_length
    )
    return [
        *_personal_rules(doc),
        *_summary_rule(doc, min_length),
        *_experience_rules(doc, frozenset(asked_ids)),
        *_education_rule(doc),
        *_languages_rule(doc),
    ]


# =============================================================================
# Collaborator question wrappers
# =============================================================================


def skill_detection_question(prompt: str) -> SkillRatingQuestion:
    """Wrap the skill-detection prompt as a name-and-level question."""
    return SkillRatingQuestion(
        id=SKILL_DETECTION_QUESTION_ID,
        prompt=prompt,
        source=QuestionSource.SKILL_DETECTION,
        hint="Name the skill and your level, e.g. Docker - Advanced",
    )


def skill_assessment_question(item: SkillAssessmentItem) -> SkillRatingQuestion:
    """Wrap one skill-assessment item as a level question for its skill key."""
    return SkillRatingQuestion(
        id=f"assessment.{item.key}",
        prompt=item.question,
        source=QuestionSource.SKILL_ASSESSMENT,
        choices=list(item.options),
        is_skill_assessment=True,
        skill_name=humanize_key(item.key),
        skill_key=item.key,
    )


# =============================================================================
# Orchestrator
# =============================================================================


class QuestionOrchestrator:
    """Owns the question queue and applies answers.

    The orchestrator never holds the document; callers pass the current
    document into every operation and keep the returned one.
    """

    def __init__(self, summary_min_length: int | None = None) -> None:
        self.summary_min_length = (
            settings.summary_min_length if summary_min_length is None else summary_min_length
        )
        self.mode = QueueMode.IDLE
        self.queue: list[Question] = []
        self.asked_ids: set[str] = set()
        self.shown_texts: list[str] = []
        self.answers: dict[str, str] = {}
        self._pinned: list[Question] = []
        self._followup_seq = 0

    # -------------------------------------------------------------------------
    # Population
    # -------------------------------------------------------------------------

    def start_structural(
        self, doc: Document, skill_question: Question | None = None
    ) -> QueueSignal | None:
        """Fill the queue from the structural rules.

        Args:
            doc: Current document.
            skill_question: Optional detected-skill question, asked first.

        Returns:
            STRUCTURAL_DRAINED if there is nothing to ask, else None.
        """
        self.mode = QueueMode.STRUCTURAL
        self.asked_ids = set()
        self._pinned = [skill_question] if skill_question is not None else []
        self._rebuild_structural(doc)
        logger.info("structural_queue_populated", count=len(self.queue))
        return self._drain_signal()

    def load_skill_assessment(self, items: list[SkillAssessmentItem]) -> QueueSignal | None:
        """Replace the queue with skill-assessment questions."""
        self.mode = QueueMode.SKILL_ASSESSMENT
        self._pinned = []
        seen: set[str] = set()
        self.queue = []
        for item in items:
            if item.key in seen:
                continue
            seen.add(item.key)
            self.queue.append(skill_assessment_question(item))
        logger.info("skill_assessment_queue_populated", count=len(self.queue))
        return self._drain_signal()

    def load_followups(
        self, items: list[FollowupQuestionItem], max_count: int
    ) -> QueueSignal | None:
        """Replace the queue with AI follow-up questions.

        Typo-correction items are placed first and are uncapped; the rest
        are capped at max_count. Texts shown earlier in the session are
        dropped.

        Args:
            items: Follow-up items from the collaborator.
            max_count: Cap on non-typo questions.

        Returns:
            AI_DRAINED if nothing new remains to ask, else None.
        """
        self.mode = QueueMode.AI_FOLLOWUP
        self._pinned = []
        shown = {text.casefold() for text in self.shown_texts}

        typo: list[FollowupQuestionItem] = []
        other: list[FollowupQuestionItem] = []
        for item in items:
            folded = item.question.strip().casefold()
            if folded in shown:
                continue
            shown.add(folded)
            if item.category == TYPO_CORRECTION_CATEGORY:
                typo.append(item)
            else:
                other.append(item)

        self.queue = [self._followup_question(item) for item in typo + other[: max(max_count, 0)]]
        self.shown_texts.extend(question.prompt for question in self.queue)
        logger.info(
            "followup_queue_populated",
            count=len(self.queue),
            typo_corrections=len(typo),
            offered=len(items),
        )
        return self._drain_signal()

    def clear(self) -> None:
        """Empty the queue, e.g. when a generator failed."""
        self.queue = []
        self._pinned = []

    def _followup_question(self, item: FollowupQuestionItem) -> FreeformQuestion:
        self._followup_seq += 1
        return FreeformQuestion(
            id=f"followup.{self._followup_seq}",
            prompt=item.question.strip(),
            source=QuestionSource.FOLLOWUP,
            choices=list(item.choices) if item.is_multiple_choice else [],
            hint=item.hint,
            category=item.category,
        )

    def _rebuild_structural(self, doc: Document) -> None:
        pending = [q for q in self._pinned if q.id not in self.asked_ids]
        pending.extend(
            q
            for q in structural_questions(doc, self.summary_min_length, self.asked_ids)
            if q.id not in self.asked_ids
        )
        self.queue = pending

    def _drain_signal(self) -> QueueSignal | None:
        if self.queue or self.mode is QueueMode.IDLE:
            return None
        return _DRAIN_SIGNALS[self.mode]

    # -------------------------------------------------------------------------
    # Answering
    # -------------------------------------------------------------------------

    def current(self) -> Question | None:
        """Head of the queue, or None when empty."""
        return self.queue[0] if self.queue else None

    def submit(self, doc: Document, answer: str | Skip) -> AnswerOutcome:
        """Apply an answer (or a skip) to the head question.

        A skip, or a blank answer, writes nothing. A rejected answer
        propagates AnswerValidationError and leaves the queue untouched.

        Args:
            doc: Current document. Not modified.
            answer: Answer text or SKIPPED.

        Returns:
            AnswerOutcome with the new document and any drain signal.

        Raises:
            NoPendingQuestionError: If the queue is empty.
            AnswerValidationError: If the answer fails its format check.
        """
        question = self.current()
        if question is None:
            raise NoPendingQuestionError("No question is awaiting an answer.")

        skipped = answer is SKIPPED or not str(answer).strip()
        if skipped:
            updated = doc
        else:
            text = str(answer).strip()
            updated = apply_answer(doc, question, text)
            self.answers[question.prompt] = text

        self.queue.pop(0)
        if self.mode is QueueMode.STRUCTURAL:
            self.asked_ids.add(question.id)
            self._rebuild_structural(updated)

        logger.info(
            "question_answered",
            question_id=question.id,
            mode=self.mode.value,
            skipped=skipped,
            remaining=len(self.queue),
        )
        return AnswerOutcome(
            document=updated,
            question=question,
            skipped=skipped,
            signal=self._drain_signal(),
        )

    def collected_answers(self) -> dict[str, str]:
        """Question text -> answer for every non-skipped answer so far."""
        return dict(self.answers)

    # -------------------------------------------------------------------------
    # Drafts
    # -------------------------------------------------------------------------

    def to_state(self) -> dict[str, Any]:
        """Serialize the queue state to JSON-compatible data."""
        return {
            "mode": self.mode.value,
            "queue": question_list_adapter.dump_python(self.queue, by_alias=True, mode="json"),
            "pinned": question_list_adapter.dump_python(self._pinned, by_alias=True, mode="json"),
            "askedIds": sorted(self.asked_ids),
            "shownTexts": list(self.shown_texts),
            "answers": dict(self.answers),
            "followupSeq": self._followup_seq,
        }

    @classmethod
    def from_state(
        cls, state: dict[str, Any], summary_min_length: int | None = None
    ) -> "QuestionOrchestrator":
        """Restore an orchestrator produced by to_state()."""
        orchestrator = cls(summary_min_length=summary_min_length)
        orchestrator.mode = QueueMode(state.get("mode", QueueMode.IDLE.value))
        orchestrator.queue = question_list_adapter.validate_python(state.get("queue", []))
        orchestrator._pinned = question_list_adapter.validate_python(state.get("pinned", []))
        orchestrator.asked_ids = set(state.get("askedIds", []))
        orchestrator.shown_texts = list(state.get("shownTexts", []))
        orchestrator.answers = dict(state.get("answers", {}))
        orchestrator._followup_seq = int(state.get("followupSeq", 0))
        return orchestrator
