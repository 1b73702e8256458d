"""Pydantic schemas for reconciliation API."""

import datetime as dt
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from bookmatch.schemas.base import BaseResponse, ListResponse
from bookmatch.services.reconciliation import MatchType
from bookmatch.services.reconciliation_session import SessionState


class ExternalRecordSchema(BaseResponse):
    """One statement line as supplied by statement ingestion."""

    date: dt.date
    description: str = Field(max_length=500)
    debit_amount: Decimal | None = Field(default=None, decimal_places=2)
    credit_amount: Decimal | None = Field(default=None, decimal_places=2)
    running_balance: Decimal | None = Field(default=None, decimal_places=2)


class PostingSummary(BaseResponse):
    id: UUID
    journal_entry_id: UUID
    account_id: UUID
    account_name: str
    amount: Decimal
    entry_date: dt.date
    cleared: bool
    reconciled: bool
    reconcile_session_id: UUID | None


class LedgerEntrySummary(BaseResponse):
    id: UUID
    date: dt.date
    payee: str
    original_description: str | None = None
    postings: list[PostingSummary]


class MatchCandidatePairResponse(BaseResponse):
    external_record: ExternalRecordSchema
    ledger_entry: LedgerEntrySummary | None
    posting_id: UUID | None
    score: int = Field(ge=0, le=100)
    match_type: MatchType
    reasons: list[str]


class PreviewSummaryResponse(BaseResponse):
    total_external: int
    total_ledger: int
    total_matched: int
    total_possible: int
    total_unmatched: int
    statement_balance: Decimal | None
    ledger_balance: Decimal
    difference: Decimal | None


class MatchPreviewRequest(BaseModel):
    """Request body to preview statement matches for one account."""

    account_id: UUID
    records: list[ExternalRecordSchema] = Field(default_factory=list, max_length=5000)
    start_date: dt.date | None = None
    end_date: dt.date | None = None


class MatchPreviewResponse(BaseResponse):
    exact: list[MatchCandidatePairResponse]
    probable: list[MatchCandidatePairResponse]
    possible: list[MatchCandidatePairResponse]
    low_confidence: list[MatchCandidatePairResponse]
    unmatched_external: list[ExternalRecordSchema]
    unmatched_ledger: list[LedgerEntrySummary]
    summary: PreviewSummaryResponse


class SessionCreate(BaseModel):
    account_id: UUID
    statement_start: dt.date
    statement_end: dt.date
    statement_start_balance: Decimal = Field(decimal_places=2)
    statement_end_balance: Decimal = Field(decimal_places=2)
    notes: str | None = None


class SessionUpdate(BaseModel):
    statement_start: dt.date | None = None
    statement_end: dt.date | None = None
    statement_start_balance: Decimal | None = Field(default=None, decimal_places=2)
    statement_end_balance: Decimal | None = Field(default=None, decimal_places=2)
    notes: str | None = None

    @model_validator(mode="after")
    def dates_together(self) -> "SessionUpdate":
        if (self.statement_start is None) != (self.statement_end is None):
            raise ValueError("statement_start and statement_end must be updated together")
        return self


class SessionResponse(BaseResponse):
    id: UUID
    account_id: UUID
    statement_start: dt.date
    statement_end: dt.date
    statement_start_balance: Decimal
    statement_end_balance: Decimal
    notes: str | None
    locked: bool
    created_at: dt.datetime | None


SessionListResponse = ListResponse[SessionResponse]


class ReconciliationStatusResponse(BaseResponse):
    session_id: UUID
    account_id: UUID
    statement_start: dt.date
    statement_end: dt.date
    statement_start_balance: Decimal
    reconciled_amount: Decimal
    expected_end_balance: Decimal
    statement_end_balance: Decimal
    difference: Decimal
    is_balanced: bool
    reconciled_count: int
    unreconciled_count: int
    state: SessionState


class PostingIdsRequest(BaseModel):
    posting_ids: list[UUID] = Field(min_length=1, max_length=5000)


class PostingUpdateResponse(BaseModel):
    updated: int
    status: ReconciliationStatusResponse


UnreconciledPostingsResponse = ListResponse[PostingSummary]


class ClearedSuggestionResponse(BaseResponse):
    account_id: UUID
    statement_end: dt.date
    posting_ids: list[UUID]
    expected_end_balance: Decimal
    statement_end_balance: Decimal
    difference: Decimal


class AccountReconciliationSummaryResponse(BaseResponse):
    account_id: UUID
    last_reconciled: dt.date | None
    unreconciled_count: int
    unreconciled_amount: Decimal
