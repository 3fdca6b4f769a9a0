"""Payment settlement endpoints.

Rejections and storage failures propagate to the app's exception handlers,
which map them to status codes with caller-safe messages.
"""

from fastapi import APIRouter, status

from settlement_engine.api.dependencies import CurrentUser, Fingerprint, SettlementDep
from settlement_engine.api.schemas import (
    CompletedSession,
    ErrorResponse,
    FindCompletedSessionsResponse,
    ProcessPendingResponse,
    ReconcileAction,
    ReconcileRequest,
    VerifyRequest,
    VerifyResponse,
)
from settlement_engine.payments.settlement import SettlementOutcome

router = APIRouter(prefix="/payments", tags=["payments"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _verify_response(outcome: SettlementOutcome) -> VerifyResponse:
    return VerifyResponse(
        success=True,
        already_processed=True if outcome.already_processed else None,
        credit_amount=outcome.credit_amount,
        new_balance=outcome.new_balance,
    )


@router.post(
    "/verify",
    response_model=VerifyResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    responses=_ERROR_RESPONSES,
)
def verify_payment(
    payload: VerifyRequest,
    user: CurrentUser,
    fingerprint: Fingerprint,
    settlement: SettlementDep,
) -> VerifyResponse:
    """Verify a returned checkout session and credit it exactly once."""
    outcome = settlement.verify_payment(payload.session_id, user.user_id, fingerprint=fingerprint)
    return _verify_response(outcome)


@router.post(
    "/reconcile",
    response_model=VerifyResponse | FindCompletedSessionsResponse | ProcessPendingResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    responses=_ERROR_RESPONSES,
)
def reconcile(
    payload: ReconcileRequest,
    user: CurrentUser,
    fingerprint: Fingerprint,
    settlement: SettlementDep,
) -> VerifyResponse | FindCompletedSessionsResponse | ProcessPendingResponse:
    """Find or settle sessions the browser never reported."""
    if payload.action is ReconcileAction.PROCESS_SESSION:
        outcome = settlement.process_session(
            payload.session_id, user.user_id, fingerprint=fingerprint
        )
        return _verify_response(outcome)

    if payload.action is ReconcileAction.FIND_COMPLETED_SESSIONS:
        report = settlement.find_completed_sessions(
            user.user_id, user.email, fingerprint=fingerprint
        )
        return FindCompletedSessionsResponse(
            completed_sessions=[
                CompletedSession(
                    session_id=c.session_id,
                    amount=c.payment.charged_amount,
                    credit_amount=c.payment.credit_amount,
                    created=c.created,
                    source=c.source,
                )
                for c in report.candidates
            ],
            current_balance=report.current_balance,
        )

    result = settlement.process_pending(user.user_id, user.email, fingerprint=fingerprint)
    return ProcessPendingResponse(
        processed_count=result.processed_count,
        total_credits=result.total_credits,
        failed_count=len(result.failures),
    )
