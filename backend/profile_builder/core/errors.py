"""API error classes.

HTTP status codes and machine-readable error codes for the pipeline API.
Domain errors raised by the pipeline services are translated into these
at the router boundary; the exception handlers in main.py render them in
the {"error": {...}} envelope.

Codes used by the pipelines router:
    VALIDATION_ERROR          400  bad body, rejected answer, unknown diff path
    NOT_FOUND                 404  unknown pipeline id, no pending diff
    PIPELINE_BUSY             409  a step for the same pipeline is running
    INVALID_STATE_TRANSITION  422  no question/review pending, already started
    INTERNAL_ERROR            500  anything unhandled
"""


class APIError(Exception):
    """Base class for errors returned to the pipeline host.

    Attributes:
        code: Machine-readable error code (e.g., "PIPELINE_BUSY").
        message: Text safe to show to the user.
        status_code: HTTP status code to return.
        details: Optional per-field details, e.g. the question id an
            answer was rejected for.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Request or answer rejected (400).

    Used for malformed request bodies and for answers that fail their
    question's format check (e.g., a malformed email address).
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class NotFoundError(APIError):
    """Unknown pipeline or missing sub-resource (404).

    NotFoundError("Pipeline", "abc") reads "Pipeline with id 'abc' not found".
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Conflicting request (409).

    Raised when a phase-advancing call arrives while another one for the
    same pipeline is still in flight.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class InvalidStateError(APIError):
    """Pipeline not in a state that allows the call (422).

    The request is well-formed but, for example, a diff is accepted when
    no review is pending or an answer arrives with no question outstanding.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            code="INVALID_STATE_TRANSITION",
            message=message,
            status_code=422,
        )


class InternalError(APIError):
    """Unhandled failure (500). The message never carries exception text."""

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
