"""External collaborators consumed by the profile pipeline.

The pipeline talks to six request/response services through the
ProfileCollaborators protocol:

    parse_profile               raw text -> ProfileDocument skeleton
    detect_profile_type         document -> role/seniority/sector
    generate_skill_question     document -> one skill question
    generate_skill_assessment   document + type -> skill-rating items
    generate_followup_questions document + asked texts + cap -> follow-ups
    improve_profile             document + question->answer map -> document
    score_profile               document -> score and feedback

LLMProfileCollaborators implements them on top of an LLMProvider. Every
failure surfaces as CollaboratorUnavailableError (transport failure,
timeout, provider error) or MalformedCollaboratorResponseError (bad JSON,
missing or mistyped fields). Only TransientError is retried, once.
"""

import asyncio
import json
from typing import Any, Protocol, TypeVar

import structlog
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from profile_builder.core.config import settings
from profile_builder.core.llm_sanitization import sanitize_llm_input
from profile_builder.providers.config import ProviderConfig
from profile_builder.providers.errors import ProviderError
from profile_builder.providers.llm.base import LLMMessage, LLMProvider, TaskType
from profile_builder.providers.retry import with_retries
from profile_builder.schemas.profile import empty_document, normalize_document
from profile_builder.services.pipeline_errors import (
    CollaboratorUnavailableError,
    MalformedCollaboratorResponseError,
)

logger = structlog.get_logger()

_LOG_EXCERPT_LENGTH = 200
"""Max characters of exception messages logged (may echo user content)."""

_MD_FENCE = "```"
_MD_FENCE_JSON = "```json"

SENIORITY_LEVELS: tuple[str, ...] = (
    "Intern",
    "Junior",
    "Mid",
    "Senior",
    "Lead",
    "Manager",
    "Director",
    "VP",
    "C-Level",
)

FOLLOWUP_CATEGORIES: tuple[str, ...] = (
    "achievements",
    "technical",
    "leadership",
    "growth",
    "industry",
    "typo_correction",
)

TYPO_CORRECTION_CATEGORY = "typo_correction"


# =============================================================================
# Result models
# =============================================================================


class _CollaboratorModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ProfileTypeResult(_CollaboratorModel):
    """Detected occupation of the profile owner."""

    role: str = ""
    seniority: str = ""
    sector: str = ""
    confidence: float = 0.0

    @field_validator("role", "sector", "seniority", mode="before")
    @classmethod
    def none_to_empty(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("seniority")
    @classmethod
    def known_seniority(cls, v: str) -> str:
        """Map onto the known levels case-insensitively; unknown becomes ""."""
        for level in SENIORITY_LEVELS:
            if v.strip().casefold() == level.casefold():
                return level
        return ""

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: object) -> float:
        try:
            return max(0.0, min(1.0, float(v)))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0


class SkillQuestionResult(_CollaboratorModel):
    """One generated question asking the user to name and rate a skill."""

    question: str = Field(
        min_length=1,
        validation_alias=AliasChoices("question", "promptText", "prompt_text"),
    )


class SkillAssessmentItem(_CollaboratorModel):
    """One skill-assessment question for a camelCase skill key."""

    key: str = Field(min_length=1)
    question: str = Field(min_length=1)
    options: list[str] = Field(default_factory=list)


class FollowupQuestionItem(_CollaboratorModel):
    """One AI-generated follow-up question."""

    id: str = ""
    question: str = Field(min_length=1)
    category: str = ""
    hint: str = ""
    is_multiple_choice: bool = False
    choices: list[str] = Field(default_factory=list)

    @field_validator("id", "category", "hint", mode="before")
    @classmethod
    def coerce_text(cls, v: object) -> object:
        if v is None:
            return ""
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("choices", mode="before")
    @classmethod
    def none_to_list(cls, v: object) -> object:
        return [] if v is None else v


class ScoreResult(_CollaboratorModel):
    """Quality score of a profile document with feedback."""

    score: int = Field(validation_alias=AliasChoices("score", "overall"))
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def round_and_clamp(cls, v: object) -> object:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return max(0, min(100, round(v)))
        return v


# =============================================================================
# Protocol
# =============================================================================


class ProfileCollaborators(Protocol):
    """External services the pipeline calls but does not implement."""

    async def parse_profile(self, raw_text: str) -> dict[str, Any]: ...

    async def detect_profile_type(self, document: dict[str, Any]) -> ProfileTypeResult: ...

    async def generate_skill_question(self, document: dict[str, Any]) -> SkillQuestionResult: ...

    async def generate_skill_assessment(
        self, document: dict[str, Any], profile_type: ProfileTypeResult
    ) -> list[SkillAssessmentItem]: ...

    async def generate_followup_questions(
        self,
        document: dict[str, Any],
        asked_questions: list[str],
        max_questions: int,
    ) -> list[FollowupQuestionItem]: ...

    async def improve_profile(
        self, document: dict[str, Any], answers: dict[str, str]
    ) -> dict[str, Any]: ...

    async def score_profile(self, document: dict[str, Any]) -> ScoreResult: ...


# =============================================================================
# Prompts
# =============================================================================

PARSE_SYSTEM_PROMPT = """\
You are an expert resume parser. Extract structured data from the resume text.

Rules:
1. Use exactly the keys of the JSON skeleton below; do not add keys
2. Extract ALL experience and education entries, most recent first
3. Keep dates as written (e.g. "2020", "Jan 2021", "Present")
4. If a field is missing, use an empty string or empty list rather than guessing
5. Certificates are plain strings

Skeleton:
{skeleton}

Output ONLY valid JSON matching the skeleton. No markdown, no explanation."""

TYPE_DETECTION_SYSTEM_PROMPT = """\
You classify the occupation of a resume owner.

Return JSON: {{"role": str, "seniority": str, "sector": str, "confidence": 0.0-1.0}}
seniority must be one of: {levels}, or "" when unclear.
Output ONLY valid JSON."""

SKILL_QUESTION_SYSTEM_PROMPT = """\
You write ONE short question asking the person to name a key skill that is
missing from their resume and rate their level (Beginner, Intermediate,
Advanced, Expert). Base it on their experience.

Return JSON: {"question": str}
Output ONLY valid JSON."""

SKILL_ASSESSMENT_SYSTEM_PROMPT = """\
You assess the core skills expected of a {role} ({seniority}) in {sector}.
Write 3 to 6 questions, each asking the person to rate one skill.

Return JSON: {{"questions": [{{"key": camelCaseSkillKey, "question": str,
"options": ["None", "Beginner", "Intermediate", "Advanced", "Expert"]}}]}}
Output ONLY valid JSON."""

FOLLOWUP_SYSTEM_PROMPT = """\
You interview a person to strengthen their resume. Ask at most {max_questions}
questions that uncover concrete achievements, metrics, leadership, technical
depth, growth and industry context missing from the resume. Additionally ask
one question per obvious typo you find (category "typo_correction").

Do not repeat any of these already-asked questions:
{asked}

Return JSON: {{"questions": [{{"id": str, "question": str, "category": one of
{categories}, "hint": str, "isMultipleChoice": bool, "choices": [str]}}]}}
Output ONLY valid JSON."""

IMPROVE_SYSTEM_PROMPT = """\
You improve a resume using the person's answers to interview questions.

Rules:
1. Merge facts from the answers into the right sections
2. Strengthen bullets with the metrics and outcomes the answers provide
3. Fix typos the person confirmed
4. Never invent facts that are not in the resume or the answers
5. Return the COMPLETE resume with exactly the same keys

Output ONLY valid JSON. No markdown, no explanation."""

SCORE_SYSTEM_PROMPT = """\
You are a senior recruiter scoring a resume from 0 to 100 for completeness,
impact and clarity.

Return JSON: {"score": int, "strengths": [str], "weaknesses": [str],
"suggestions": [str]}
Output ONLY valid JSON."""


# =============================================================================
# LLM-backed implementation
# =============================================================================

T = TypeVar("T", bound=BaseModel)


class LLMProfileCollaborators:
    """ProfileCollaborators implemented with LLM completions in JSON mode."""

    def __init__(
        self,
        provider: LLMProvider,
        provider_config: ProviderConfig | None = None,
        timeout_seconds: float | None = None,
        max_source_text_length: int | None = None,
    ) -> None:
        """Initialize with an LLM provider.

        Args:
            provider: LLM provider used for every call.
            provider_config: Retry policy; defaults to one retry of
                transient failures.
            timeout_seconds: Per-attempt timeout. Defaults to settings.
            max_source_text_length: Cap on raw résumé text sent to the
                parser. Defaults to settings.
        """
        self._provider = provider
        self._retry_config = provider_config or ProviderConfig(
            max_retries=settings.collaborator_max_retries
        )
        self._timeout = timeout_seconds or settings.collaborator_timeout_seconds
        self._max_source_text_length = (
            max_source_text_length or settings.max_source_text_length
        )

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    async def _complete_json(
        self,
        operation: str,
        task: TaskType,
        system_prompt: str,
        user_prompt: str,
    ) -> Any:
        """Run one JSON-mode completion and decode the result.

        Raises:
            CollaboratorUnavailableError: Provider failure or timeout.
            MalformedCollaboratorResponseError: Empty or non-JSON content.
        """
        messages = [
            LLMMessage(role="system", content=system_prompt),
            LLMMessage(role="user", content=user_prompt),
        ]

        async def attempt() -> Any:
            return await asyncio.wait_for(
                self._provider.complete(messages=messages, task=task, json_mode=True),
                timeout=self._timeout,
            )

        try:
            response = await with_retries(attempt, self._retry_config)
        except TimeoutError as exc:
            logger.warning("collaborator_timeout", operation=operation, timeout=self._timeout)
            raise CollaboratorUnavailableError(
                operation, f"The {operation} service timed out."
            ) from exc
        except ProviderError as exc:
            logger.warning(
                "collaborator_failed",
                operation=operation,
                error=str(exc)[:_LOG_EXCERPT_LENGTH],
                error_type=type(exc).__name__,
            )
            raise CollaboratorUnavailableError(
                operation, f"The {operation} service is unavailable."
            ) from exc

        return self._decode_json(operation, response.content)

    @staticmethod
    def _strip_markdown_fences(content: str) -> str:
        """Remove markdown code fences from LLM response."""
        text = content.strip()
        if text.startswith(_MD_FENCE_JSON):
            text = text[len(_MD_FENCE_JSON) :].strip()
        elif text.startswith(_MD_FENCE):
            text = text[len(_MD_FENCE) :].strip()
        if text.endswith(_MD_FENCE):
            text = text[: -len(_MD_FENCE)].strip()
        return text

    def _decode_json(self, operation: str, content: str | None) -> Any:
        if not content:
            raise MalformedCollaboratorResponseError(
                operation, f"The {operation} service returned an empty response."
            )
        try:
            return json.loads(self._strip_markdown_fences(content))
        except json.JSONDecodeError as exc:
            logger.warning(
                "collaborator_invalid_json",
                operation=operation,
                error=str(exc)[:_LOG_EXCERPT_LENGTH],
            )
            raise MalformedCollaboratorResponseError(
                operation, f"The {operation} service returned invalid JSON."
            ) from exc

    @staticmethod
    def _validate(operation: str, model: type[T], data: Any) -> T:
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            logger.warning(
                "collaborator_invalid_response",
                operation=operation,
                error=str(exc)[:_LOG_EXCERPT_LENGTH],
            )
            raise MalformedCollaboratorResponseError(
                operation, f"The {operation} service returned unexpected fields."
            ) from exc

    def _validate_list(self, operation: str, model: type[T], data: Any) -> list[T]:
        items = data.get("questions") if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise MalformedCollaboratorResponseError(
                operation, f"The {operation} service did not return a question list."
            )
        return [self._validate(operation, model, item) for item in items]

    def _validate_document(self, operation: str, data: Any) -> dict[str, Any]:
        if isinstance(data, dict) and isinstance(data.get("cv"), dict):
            data = data["cv"]
        if not isinstance(data, dict):
            raise MalformedCollaboratorResponseError(
                operation, f"The {operation} service did not return a profile."
            )
        try:
            return normalize_document(data)
        except ValidationError as exc:
            logger.warning(
                "collaborator_invalid_response",
                operation=operation,
                error=str(exc)[:_LOG_EXCERPT_LENGTH],
            )
            raise MalformedCollaboratorResponseError(
                operation, f"The {operation} service returned a malformed profile."
            ) from exc

    @staticmethod
    def _document_prompt(document: dict[str, Any]) -> str:
        return sanitize_llm_input(json.dumps(document, ensure_ascii=False, indent=2))

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def parse_profile(self, raw_text: str) -> dict[str, Any]:
        """Parse raw résumé text into a normalised document.

        Empty or whitespace-only text returns the empty skeleton without
        calling the provider.
        """
        if not raw_text or not raw_text.strip():
            return empty_document()

        safe_text = sanitize_llm_input(raw_text[: self._max_source_text_length])
        skeleton = json.dumps(empty_document(), indent=2)
        data = await self._complete_json(
            "parse",
            TaskType.PROFILE_PARSING,
            PARSE_SYSTEM_PROMPT.format(skeleton=skeleton),
            f"Resume text:\n<resume>\n{safe_text}\n</resume>",
        )
        return self._validate_document("parse", data)

    async def detect_profile_type(self, document: dict[str, Any]) -> ProfileTypeResult:
        data = await self._complete_json(
            "type detection",
            TaskType.PROFILE_TYPE_DETECTION,
            TYPE_DETECTION_SYSTEM_PROMPT.format(levels=", ".join(SENIORITY_LEVELS)),
            f"Resume:\n<profile>\n{self._document_prompt(document)}\n</profile>",
        )
        return self._validate("type detection", ProfileTypeResult, data)

    async def generate_skill_question(self, document: dict[str, Any]) -> SkillQuestionResult:
        data = await self._complete_json(
            "skill question",
            TaskType.SKILL_QUESTION,
            SKILL_QUESTION_SYSTEM_PROMPT,
            f"Resume:\n<profile>\n{self._document_prompt(document)}\n</profile>",
        )
        return self._validate("skill question", SkillQuestionResult, data)

    async def generate_skill_assessment(
        self, document: dict[str, Any], profile_type: ProfileTypeResult
    ) -> list[SkillAssessmentItem]:
        system_prompt = SKILL_ASSESSMENT_SYSTEM_PROMPT.format(
            role=sanitize_llm_input(profile_type.role) or "professional",
            seniority=profile_type.seniority or "any level",
            sector=sanitize_llm_input(profile_type.sector) or "their sector",
        )
        data = await self._complete_json(
            "skill assessment",
            TaskType.SKILL_ASSESSMENT,
            system_prompt,
            f"Resume:\n<profile>\n{self._document_prompt(document)}\n</profile>",
        )
        return self._validate_list("skill assessment", SkillAssessmentItem, data)

    async def generate_followup_questions(
        self,
        document: dict[str, Any],
        asked_questions: list[str],
        max_questions: int,
    ) -> list[FollowupQuestionItem]:
        asked = "\n".join(f"- {sanitize_llm_input(text)}" for text in asked_questions) or "(none)"
        system_prompt = FOLLOWUP_SYSTEM_PROMPT.format(
            max_questions=max_questions,
            asked=asked,
            categories=", ".join(FOLLOWUP_CATEGORIES),
        )
        data = await self._complete_json(
            "follow-up questions",
            TaskType.FOLLOWUP_QUESTIONS,
            system_prompt,
            f"Resume:\n<profile>\n{self._document_prompt(document)}\n</profile>",
        )
        return self._validate_list("follow-up questions", FollowupQuestionItem, data)

    async def improve_profile(
        self, document: dict[str, Any], answers: dict[str, str]
    ) -> dict[str, Any]:
        safe_answers = {
            sanitize_llm_input(question): sanitize_llm_input(answer)
            for question, answer in answers.items()
        }
        user_prompt = (
            f"Resume:\n<profile>\n{self._document_prompt(document)}\n</profile>\n\n"
            f"Answers:\n<answers>\n{json.dumps(safe_answers, ensure_ascii=False, indent=2)}\n"
            "</answers>"
        )
        data = await self._complete_json(
            "improve",
            TaskType.PROFILE_IMPROVEMENT,
            IMPROVE_SYSTEM_PROMPT,
            user_prompt,
        )
        return self._validate_document("improve", data)

    async def score_profile(self, document: dict[str, Any]) -> ScoreResult:
        data = await self._complete_json(
            "scoring",
            TaskType.PROFILE_SCORING,
            SCORE_SYSTEM_PROMPT,
            f"Resume:\n<profile>\n{self._document_prompt(document)}\n</profile>",
        )
        return self._validate("scoring", ScoreResult, data)
