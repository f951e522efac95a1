"""Pydantic schemas for the profile document and pipeline questions."""

from profile_builder.schemas.profile import (
    TOP_LEVEL_LIST_FIELDS,
    ProfileDocument,
    empty_document,
    normalize_document,
)
from profile_builder.schemas.questions import (
    SKIPPED,
    AnswerKind,
    DelimitedListQuestion,
    FreeformQuestion,
    Question,
    QuestionSource,
    ScalarQuestion,
    SkillRatingQuestion,
    StructuredCompositeQuestion,
)

__all__ = [
    # Profile document
    "ProfileDocument",
    "TOP_LEVEL_LIST_FIELDS",
    "empty_document",
    "normalize_document",
    # Questions
    "SKIPPED",
    "AnswerKind",
    "DelimitedListQuestion",
    "FreeformQuestion",
    "Question",
    "QuestionSource",
    "ScalarQuestion",
    "SkillRatingQuestion",
    "StructuredCompositeQuestion",
]
