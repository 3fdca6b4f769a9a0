"""Pydantic schemas for API request/response models.

Field names are camelCase on the wire to match the browser client.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Requests
# ============================================================================


class VerifyRequest(CamelModel):
    """Schema for verifying a returned checkout session.

    The session id is left untyped so malformed values reach the verifier's
    shape check and get the same 400 as any other malformed id.
    """

    session_id: Any = None


class ReconcileAction(str, Enum):
    """Reconcile operations."""

    FIND_COMPLETED_SESSIONS = "find_completed_sessions"
    PROCESS_SESSION = "process_session"
    PROCESS_PENDING = "process_pending"


class ReconcileRequest(CamelModel):
    """Schema for a reconcile call."""

    action: ReconcileAction
    session_id: Any = None


# ============================================================================
# Responses
# ============================================================================


class VerifyResponse(CamelModel):
    """Schema for a settled session."""

    success: bool = True
    already_processed: bool | None = None
    credit_amount: int
    new_balance: int


class CompletedSession(CamelModel):
    """A confirmed-but-uncredited session."""

    session_id: str
    amount: int
    credit_amount: int
    created: int | None = None
    source: str


class FindCompletedSessionsResponse(CamelModel):
    """Schema for find_completed_sessions."""

    success: bool = True
    completed_sessions: list[CompletedSession] = Field(default_factory=list)
    current_balance: int


class ProcessPendingResponse(CamelModel):
    """Schema for process_pending."""

    success: bool = True
    processed_count: int
    total_credits: int
    failed_count: int = 0


class ErrorResponse(CamelModel):
    """Schema for error response."""

    success: bool = False
    error: str
    code: str | None = None
