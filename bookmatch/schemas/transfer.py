"""Pydantic schemas for transfer matching API."""

import datetime as dt
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from bookmatch.schemas.base import BaseResponse
from bookmatch.services.reconciliation import MatchType


class TransferPreviewRequest(BaseModel):
    account_a: UUID
    account_b: UUID
    start_date: dt.date | None = None
    end_date: dt.date | None = None


class TransferCandidateResponse(BaseResponse):
    id: UUID
    account_id: UUID
    date: dt.date
    payee: str
    amount: Decimal
    is_reconciled: bool


class TransferMatchPairResponse(BaseResponse):
    candidate_a: TransferCandidateResponse
    candidate_b: TransferCandidateResponse
    score: int = Field(ge=0, le=100)
    match_type: MatchType
    reasons: list[str]
    preselected: bool


class TransferPreviewSummaryResponse(BaseResponse):
    total_candidates_a: int
    total_candidates_b: int
    exact_matches: int
    probable_matches: int
    possible_matches: int
    low_confidence_matches: int
    unmatched: int


class TransferPreviewResponse(BaseResponse):
    exact: list[TransferMatchPairResponse]
    probable: list[TransferMatchPairResponse]
    possible: list[TransferMatchPairResponse]
    low_confidence: list[TransferMatchPairResponse]
    unmatched_a: list[TransferCandidateResponse]
    unmatched_b: list[TransferCandidateResponse]
    summary: TransferPreviewSummaryResponse


class TransferPairIn(BaseModel):
    id_a: UUID
    id_b: UUID
    date: dt.date | None = None
    payee: str | None = Field(default=None, max_length=500)


class TransferCommitRequest(BaseModel):
    pairs: list[TransferPairIn] = Field(min_length=1, max_length=1000)


class TransferCommitResponse(BaseResponse):
    merged: int
    skipped: int
    errors: list[str]
    created_ids: list[UUID]
