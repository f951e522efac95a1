"""Shared test fixtures.

Provides:
- mock_llm: MockLLMProvider injected into the provider factory
- fake_collaborators: in-memory ProfileCollaborators for pipeline tests
- client: httpx AsyncClient over the FastAPI app with fakes injected
"""

import asyncio
import copy
from collections.abc import AsyncGenerator, Callable, Iterator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from profile_builder.api.deps import get_collaborators
from profile_builder.main import app
from profile_builder.providers import factory
from profile_builder.providers.llm.mock_adapter import MockLLMProvider
from profile_builder.schemas.profile import empty_document, normalize_document
from profile_builder.services import session_store
from profile_builder.services.collaborators import (
    FollowupQuestionItem,
    ProfileTypeResult,
    ScoreResult,
    SkillAssessmentItem,
    SkillQuestionResult,
)
from profile_builder.services.pipeline_errors import CollaboratorUnavailableError

IMPROVED_SUMMARY = (
    "Backend engineer with eight years of experience building payment APIs "
    "that process two million transactions a day."
)


def complete_document() -> dict[str, Any]:
    """A document every structural rule considers complete."""
    return normalize_document(
        {
            "personalInfo": {
                "name": "Jane Doe",
                "email": "jane@example.com",
                "phone": "+1 555 0100",
                "location": "Berlin, Germany",
            },
            "summary": "Software engineer with a focus on reliable backend systems.",
            "experience": [
                {
                    "title": "Software Engineer",
                    "company": "Acme",
                    "location": "Berlin",
                    "startDate": "2020",
                    "endDate": "Present",
                    "bullets": ["Built the billing API"],
                }
            ],
            "education": [{"degree": "BSc Computer Science", "institution": "TU Berlin"}],
            "skills": [{"name": "Python", "level": "Expert"}],
            "languages": [{"language": "English"}],
        }
    )


def _default_improve(document: dict[str, Any], _answers: dict[str, str]) -> dict[str, Any]:
    improved = copy.deepcopy(document)
    improved["summary"] = IMPROVED_SUMMARY
    return improved


class FakeCollaborators:
    """In-memory ProfileCollaborators with configurable results.

    Attributes:
        parsed: Document returned by parse_profile.
        profile_type: Result of detect_profile_type.
        skill_question: Result of generate_skill_question.
        assessment: Items returned by generate_skill_assessment.
        followups: Items returned by generate_followup_questions.
        improve: Callable producing the improved document.
        scores: Scores returned in turn; the last one repeats.
        failures: Method names that raise CollaboratorUnavailableError.
        calls: (method name, argument) pairs in call order.
    """

    def __init__(self) -> None:
        self.parsed: dict[str, Any] = empty_document()
        self.profile_type = ProfileTypeResult(
            role="Software Engineer", seniority="Senior", sector="Technology", confidence=0.9
        )
        self.skill_question = SkillQuestionResult(
            question="Which container tool do you use most, and how well do you know it?"
        )
        self.assessment = [
            SkillAssessmentItem(
                key="projectManagement",
                question="How would you rate your project management skills?",
                options=["None", "Beginner", "Intermediate", "Advanced", "Expert"],
            )
        ]
        self.followups = [
            FollowupQuestionItem(
                id="1",
                question="By how much did the billing API reduce checkout failures?",
                category="achievements",
            ),
            FollowupQuestionItem(
                id="2",
                question="Did you mean 'Kubernetes' where you wrote 'Kubernets'?",
                category="typo_correction",
                is_multiple_choice=True,
                choices=["Yes", "No"],
            ),
        ]
        self.improve: Callable[[dict[str, Any], dict[str, str]], dict[str, Any]] = (
            _default_improve
        )
        self.scores: list[int] = [90]
        self.failures: set[str] = set()
        self.calls: list[tuple[str, Any]] = []
        self.improve_started = asyncio.Event()
        self.improve_gate: asyncio.Event | None = None

    def _record(self, method: str, argument: Any = None) -> None:
        self.calls.append((method, copy.deepcopy(argument)))
        if method in self.failures:
            raise CollaboratorUnavailableError(method, f"The {method} service is unavailable.")

    def called(self, method: str) -> list[Any]:
        return [argument for name, argument in self.calls if name == method]

    async def parse_profile(self, raw_text: str) -> dict[str, Any]:
        self._record("parse_profile", raw_text)
        if not raw_text.strip():
            return empty_document()
        return copy.deepcopy(self.parsed)

    async def detect_profile_type(self, document: dict[str, Any]) -> ProfileTypeResult:
        self._record("detect_profile_type", document)
        return self.profile_type

    async def generate_skill_question(self, document: dict[str, Any]) -> SkillQuestionResult:
        self._record("generate_skill_question", document)
        return self.skill_question

    async def generate_skill_assessment(
        self, document: dict[str, Any], profile_type: ProfileTypeResult
    ) -> list[SkillAssessmentItem]:
        self._record("generate_skill_assessment", profile_type.role)
        return list(self.assessment)

    async def generate_followup_questions(
        self,
        document: dict[str, Any],
        asked_questions: list[str],
        max_questions: int,
    ) -> list[FollowupQuestionItem]:
        self._record(
            "generate_followup_questions",
            {"asked": asked_questions, "max": max_questions},
        )
        return list(self.followups)

    async def improve_profile(
        self, document: dict[str, Any], answers: dict[str, str]
    ) -> dict[str, Any]:
        self._record("improve_profile", {"document": document, "answers": answers})
        self.improve_started.set()
        if self.improve_gate is not None:
            await self.improve_gate.wait()
        return normalize_document(self.improve(document, answers))

    async def score_profile(self, document: dict[str, Any]) -> ScoreResult:
        self._record("score_profile", document)
        score = self.scores.pop(0) if len(self.scores) > 1 else self.scores[0]
        return ScoreResult(
            score=score,
            strengths=["Clear experience section"],
            weaknesses=["Few metrics"],
            suggestions=["Quantify achievements"],
        )


@pytest.fixture
def fake_collaborators() -> FakeCollaborators:
    """Fresh fake collaborators with default results."""
    return FakeCollaborators()


@pytest.fixture
def mock_llm() -> Iterator[MockLLMProvider]:
    """Fixture that provides mock LLM and resets after test.

    Automatically injects into factory singleton and resets after test.

    Yields:
        MockLLMProvider instance.
    """
    mock = MockLLMProvider()

    # Inject mock into factory singleton
    factory._llm_provider = mock

    yield mock

    # Reset after test
    factory.reset_providers()


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(
    fake_collaborators: FakeCollaborators,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for API tests with fake collaborators and a fresh registry."""
    session_store.reset_registry()
    app.dependency_overrides[get_collaborators] = lambda: fake_collaborators

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
    session_store.reset_registry()
