"""In-process registry of running pipelines.

Sessions live only as long as the process. Durable storage is the host's
concern: it persists PipelineDraft objects and restores them through
register().
"""

import uuid

import structlog

from profile_builder.services.pipeline import ProfilePipeline

logger = structlog.get_logger()


class PipelineRegistry:
    """Maps session ids to ProfilePipeline instances."""

    def __init__(self) -> None:
        self._pipelines: dict[str, ProfilePipeline] = {}

    def register(self, pipeline: ProfilePipeline) -> str:
        """Store a pipeline under a new id and return the id."""
        session_id = str(uuid.uuid4())
        self._pipelines[session_id] = pipeline
        logger.info("pipeline_registered", session_id=session_id)
        return session_id

    def get(self, session_id: str) -> ProfilePipeline | None:
        return self._pipelines.get(session_id)

    def remove(self, session_id: str) -> bool:
        """Drop a session. Returns False if it did not exist."""
        if self._pipelines.pop(session_id, None) is None:
            return False
        logger.info("pipeline_removed", session_id=session_id)
        return True

    def __len__(self) -> int:
        return len(self._pipelines)


_registry: PipelineRegistry | None = None


def get_registry() -> PipelineRegistry:
    """Return the process-wide registry, creating it on first use."""
    global _registry
    if _registry is None:
        _registry = PipelineRegistry()
    return _registry


def reset_registry() -> None:
    """Drop every session (test helper)."""
    global _registry
    _registry = None
