"""Question schemas.

A question is a tagged union over ``answer_kind``. Each variant carries only
the fields its answer semantics need, and answer application dispatches on
the tag alone.

Answer kinds:
- scalar: overwrite the value at target_path
- delimitedList: split the answer on commas/semicolons into a list at target_path
- skillRating: upsert one skill (matched by key or name) into skills
- structuredComposite: decompose the answer into a new experience/education item
- freeform: append a question/answer pair to userAdditions
"""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class AnswerKind(str, Enum):
    """Declared semantics of a question's answer."""

    SCALAR = "scalar"
    DELIMITED_LIST = "delimitedList"
    SKILL_RATING = "skillRating"
    STRUCTURED_COMPOSITE = "structuredComposite"
    FREEFORM = "freeform"


class QuestionSource(str, Enum):
    """Which generator produced a question."""

    STRUCTURAL = "structural"
    SKILL_DETECTION = "skillDetection"
    SKILL_ASSESSMENT = "skillAssessment"
    FOLLOWUP = "followup"


class Skip(Enum):
    """Sentinel for a skipped question."""

    SKIPPED = "skipped"


SKIPPED = Skip.SKIPPED


class _QuestionBase(BaseModel):
    """Fields shared by every question variant.

    Attributes:
        id: Stable identifier. Structural ids are fixed per rule
            (e.g. "personal.email") so an answered rule is never re-asked.
        prompt: Literal question text shown to the user.
        source: Generator that produced the question.
        choices: Options for multiple-choice presentation (may be empty).
        hint: Optional helper text.
        category: Follow-up category (e.g. "typo_correction").
        is_skill_assessment: True for skill-assessment phase questions.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: str
    prompt: str
    source: QuestionSource = QuestionSource.STRUCTURAL
    choices: list[str] = Field(default_factory=list)
    hint: str = ""
    category: str = ""
    is_skill_assessment: bool = False


class ScalarQuestion(_QuestionBase):
    """Overwrite one value.

    Attributes:
        target_path: Document path to write.
        value_format: "email" answers are validated before acceptance.
        choice_values: Maps a chosen option to the value written. A None
            value means the choice writes nothing.
    """

    answer_kind: Literal["scalar"] = "scalar"
    target_path: str
    value_format: Literal["text", "email"] = "text"
    choice_values: dict[str, str | None] = Field(default_factory=dict)


class DelimitedListQuestion(_QuestionBase):
    """Split a free-text answer into a list.

    Attributes:
        target_path: Document path of the list to write.
        item_field: When set, each token becomes {item_field: token}
            instead of a bare string.
    """

    answer_kind: Literal["delimitedList"] = "delimitedList"
    target_path: str
    item_field: str | None = None


class SkillRatingQuestion(_QuestionBase):
    """Rate one skill.

    When skill_name is empty the answer must name the skill as well as the
    level ("Docker - Advanced"); otherwise the answer is the level alone.
    """

    answer_kind: Literal["skillRating"] = "skillRating"
    skill_name: str = ""
    skill_key: str = ""


class StructuredCompositeQuestion(_QuestionBase):
    """Decompose the answer into a new list item."""

    answer_kind: Literal["structuredComposite"] = "structuredComposite"
    target_path: str
    composite: Literal["experience", "education"]


class FreeformQuestion(_QuestionBase):
    """Open question; the answer is kept for holistic merging."""

    answer_kind: Literal["freeform"] = "freeform"


Question = Annotated[
    ScalarQuestion
    | DelimitedListQuestion
    | SkillRatingQuestion
    | StructuredCompositeQuestion
    | FreeformQuestion,
    Field(discriminator="answer_kind"),
]

question_list_adapter: TypeAdapter[list[Question]] = TypeAdapter(list[Question])


__all__ = [
    "SKIPPED",
    "AnswerKind",
    "DelimitedListQuestion",
    "FreeformQuestion",
    "Question",
    "QuestionSource",
    "ScalarQuestion",
    "SkillRatingQuestion",
    "Skip",
    "StructuredCompositeQuestion",
    "question_list_adapter",
]
