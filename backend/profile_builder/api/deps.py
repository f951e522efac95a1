"""Shared dependencies for API endpoints.

Endpoints receive collaborators and the session registry through these
Annotated aliases; tests replace them with app.dependency_overrides.
"""

from typing import Annotated

from fastapi import Depends

from profile_builder.providers.factory import get_llm_provider
from profile_builder.services.collaborators import (
    LLMProfileCollaborators,
    ProfileCollaborators,
)
from profile_builder.services.session_store import PipelineRegistry, get_registry


def get_collaborators() -> ProfileCollaborators:
    """Collaborators backed by the configured LLM provider."""
    return LLMProfileCollaborators(get_llm_provider())


Collaborators = Annotated[ProfileCollaborators, Depends(get_collaborators)]
Registry = Annotated[PipelineRegistry, Depends(get_registry)]
