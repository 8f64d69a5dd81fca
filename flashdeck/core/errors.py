"""Error envelope shared by the API clients and the development backend.

Every failing endpoint answers with ``{"error": {"code", "message", "details?"}}``.
Codes are grouped per resource so callers can branch on them without parsing
messages.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


class ApiErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class ApiErrorResponse(BaseModel):
    error: ApiErrorBody

    @classmethod
    def of(cls, code: str, message: str, details: Any = None) -> "ApiErrorResponse":
        return cls(error=ApiErrorBody(code=code, message=message, details=details))


class ErrorCode:
    """Codes every resource answers with."""

    INVALID_QUERY = "invalid_query"
    INVALID_BODY = "invalid_body"
    UNAUTHORIZED = "unauthorized"


class GenerationErrorCode:
    ACTIVE_REQUEST_EXISTS = "active_request_exists"
    NOT_FOUND = "generation_not_found"
    INVALID_TRANSITION = "invalid_transition"
    # Client-side lifecycle failures
    START_FAILED = "start_generation_error"
    POLLING_FAILED = "polling_error"
    CANCEL_FAILED = "cancel_generation_error"


class CandidateErrorCode:
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    ALREADY_ACCEPTED = "already_accepted"


class FlashcardErrorCode:
    NOT_FOUND = "not_found"
    DUPLICATE_FLASHCARD = "duplicate_flashcard"


class ReviewErrorCode:
    CARD_NOT_FOUND = "card_not_found"
    # Client-side submission failure
    SUBMIT_FAILED = "submit_failed"


# Message the backend sends with the active-generation conflict. The
# client also recognises it when the code is missing.
ACTIVE_GENERATION_MESSAGE = "An active generation request is already in progress."


class HttpErrorDescriptor(BaseModel):
    status: int
    body: ApiErrorResponse


def build_error_response(
    status: int, code: str, message: str, details: Any = None
) -> HttpErrorDescriptor:
    return HttpErrorDescriptor(
        status=status, body=ApiErrorResponse.of(code, message, details)
    )


class ApiError(Exception):
    """Raised by backend services; rendered as the JSON error envelope."""

    def __init__(
        self, status: int, code: str, message: str, details: Any = None
    ) -> None:
        super().__init__(message)
        self.descriptor = build_error_response(status, code, message, details)

    @property
    def status(self) -> int:
        return self.descriptor.status

    @property
    def code(self) -> str:
        return self.descriptor.body.error.code
