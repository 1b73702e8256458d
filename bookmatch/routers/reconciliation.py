"""Reconciliation API router."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from bookmatch.deps import DbSession, Rules, SessionManager, Store
from bookmatch.logger import get_logger
from bookmatch.schemas import (
    AccountReconciliationSummaryResponse,
    ClearedSuggestionResponse,
    MatchPreviewRequest,
    MatchPreviewResponse,
    PostingIdsRequest,
    PostingSummary,
    PostingUpdateResponse,
    ReconciliationStatusResponse,
    SessionCreate,
    SessionListResponse,
    SessionResponse,
    SessionUpdate,
    UnreconciledPostingsResponse,
)
from bookmatch.services import (
    AccountNotFoundError,
    DateRange,
    ExternalRecord,
    InvalidDateRangeError,
    NotBalancedError,
    SessionLockedError,
    SessionNotFoundError,
    SessionOverlapError,
    preview_matches,
)

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])
logger = get_logger(__name__)

_SERVICE_ERRORS = (
    AccountNotFoundError,
    InvalidDateRangeError,
    NotBalancedError,
    SessionLockedError,
    SessionNotFoundError,
    SessionOverlapError,
)


def _http_error(exc: Exception) -> HTTPException:
    logger.debug("Reconciliation request rejected", error_type=type(exc).__name__, error=str(exc))
    if isinstance(exc, (SessionNotFoundError, AccountNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidDateRangeError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NotBalancedError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "difference": str(exc.difference)},
        )
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


def _date_range(start: date | None, end: date | None) -> DateRange | None:
    if start is None and end is None:
        return None
    return DateRange(start, end)


@router.post("/preview", response_model=MatchPreviewResponse)
async def preview(
    payload: MatchPreviewRequest,
    store: Store,
    rules: Rules,
) -> MatchPreviewResponse:
    """Preview how statement lines pair with an account's ledger entries."""
    records = [
        ExternalRecord(
            date=record.date,
            description=record.description,
            debit_amount=record.debit_amount,
            credit_amount=record.credit_amount,
            running_balance=record.running_balance,
        )
        for record in payload.records
    ]
    try:
        result = await preview_matches(
            store,
            rules,
            payload.account_id,
            records,
            _date_range(payload.start_date, payload.end_date),
        )
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    return MatchPreviewResponse.model_validate(result)


@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def start_session(
    payload: SessionCreate,
    db: DbSession,
    manager: SessionManager,
) -> SessionResponse:
    """Start reconciling one statement period."""
    try:
        session_id = await manager.start_reconciliation(
            payload.account_id,
            DateRange(payload.statement_start, payload.statement_end),
            payload.statement_start_balance,
            payload.statement_end_balance,
            payload.notes,
        )
        session = await manager.get_session(session_id)
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    await db.commit()
    return SessionResponse.model_validate(session)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    manager: SessionManager,
    account_id: UUID | None = Query(None, description="Only sessions of this account"),
) -> SessionListResponse:
    sessions = await manager.list_sessions(account_id)
    items = [SessionResponse.model_validate(session) for session in sessions]
    return SessionListResponse(items=items, total=len(items))


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: UUID, manager: SessionManager) -> SessionResponse:
    try:
        session = await manager.get_session(session_id)
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    return SessionResponse.model_validate(session)


@router.get("/sessions/{session_id}/status", response_model=ReconciliationStatusResponse)
async def get_status(session_id: UUID, manager: SessionManager) -> ReconciliationStatusResponse:
    """Get the computed balance and state of a session."""
    try:
        result = await manager.get_reconciliation_status(session_id)
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    return ReconciliationStatusResponse.model_validate(result)


@router.patch("/sessions/{session_id}", response_model=SessionResponse)
async def update_session(
    session_id: UUID,
    payload: SessionUpdate,
    db: DbSession,
    manager: SessionManager,
) -> SessionResponse:
    try:
        statement_range = (
            DateRange(payload.statement_start, payload.statement_end)
            if payload.statement_start is not None
            else None
        )
        session = await manager.update_session(
            session_id,
            statement_range=statement_range,
            start_balance=payload.statement_start_balance,
            end_balance=payload.statement_end_balance,
            notes=payload.notes,
        )
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    await db.commit()
    return SessionResponse.model_validate(session)


@router.post("/sessions/{session_id}/reconcile", response_model=PostingUpdateResponse)
async def reconcile(
    session_id: UUID,
    payload: PostingIdsRequest,
    db: DbSession,
    manager: SessionManager,
) -> PostingUpdateResponse:
    """Mark postings cleared and reconciled in this session."""
    try:
        updated = await manager.reconcile_postings(session_id, payload.posting_ids)
        result = await manager.get_reconciliation_status(session_id)
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    await db.commit()
    return PostingUpdateResponse(
        updated=updated, status=ReconciliationStatusResponse.model_validate(result)
    )


@router.post("/sessions/{session_id}/unreconcile", response_model=PostingUpdateResponse)
async def unreconcile(
    session_id: UUID,
    payload: PostingIdsRequest,
    db: DbSession,
    manager: SessionManager,
) -> PostingUpdateResponse:
    try:
        updated = await manager.unreconcile_postings(session_id, payload.posting_ids)
        result = await manager.get_reconciliation_status(session_id)
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    await db.commit()
    return PostingUpdateResponse(
        updated=updated, status=ReconciliationStatusResponse.model_validate(result)
    )


@router.post("/sessions/{session_id}/lock", response_model=ReconciliationStatusResponse)
async def lock(session_id: UUID, db: DbSession, manager: SessionManager) -> ReconciliationStatusResponse:
    """Lock a balanced session. Returns 409 with the difference when not balanced."""
    try:
        result = await manager.lock_session(session_id)
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    await db.commit()
    return ReconciliationStatusResponse.model_validate(result)


@router.post("/sessions/{session_id}/unlock", response_model=ReconciliationStatusResponse)
async def unlock(session_id: UUID, db: DbSession, manager: SessionManager) -> ReconciliationStatusResponse:
    try:
        result = await manager.unlock_session(session_id)
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    await db.commit()
    return ReconciliationStatusResponse.model_validate(result)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: UUID, db: DbSession, manager: SessionManager) -> None:
    """Delete an unlocked session, unreconciling its postings."""
    try:
        await manager.delete_session(session_id)
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    await db.commit()


@router.get("/accounts/{account_id}/unreconciled", response_model=UnreconciledPostingsResponse)
async def unreconciled_postings(
    account_id: UUID,
    manager: SessionManager,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
) -> UnreconciledPostingsResponse:
    try:
        postings = await manager.get_unreconciled_postings(account_id, _date_range(start_date, end_date))
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    items = [PostingSummary.model_validate(posting) for posting in postings]
    return UnreconciledPostingsResponse(items=items, total=len(items))


@router.get("/accounts/{account_id}/suggestion", response_model=ClearedSuggestionResponse)
async def cleared_suggestion(
    account_id: UUID,
    manager: SessionManager,
    statement_end: date = Query(..., description="Last day of the statement"),
    statement_end_balance: Decimal = Query(..., description="Closing balance on the statement"),
) -> ClearedSuggestionResponse:
    """Suggest cleared postings that reconcile to the statement balance. Read-only."""
    try:
        result = await manager.suggest_cleared_postings(account_id, statement_end, statement_end_balance)
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    return ClearedSuggestionResponse.model_validate(result)


@router.get("/accounts/{account_id}/summary", response_model=AccountReconciliationSummaryResponse)
async def account_summary(account_id: UUID, manager: SessionManager) -> AccountReconciliationSummaryResponse:
    try:
        result = await manager.get_account_reconciliation_summary(account_id)
    except _SERVICE_ERRORS as e:
        raise _http_error(e) from e
    return AccountReconciliationSummaryResponse.model_validate(result)
