from bookmatch.schemas.base import BaseResponse, ListResponse
from bookmatch.schemas.reconciliation import (
    AccountReconciliationSummaryResponse,
    ClearedSuggestionResponse,
    ExternalRecordSchema,
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
from bookmatch.schemas.transfer import (
    TransferCommitRequest,
    TransferCommitResponse,
    TransferPreviewRequest,
    TransferPreviewResponse,
)

__all__ = [
    "BaseResponse",
    "ListResponse",
    "AccountReconciliationSummaryResponse",
    "ClearedSuggestionResponse",
    "ExternalRecordSchema",
    "MatchPreviewRequest",
    "MatchPreviewResponse",
    "PostingIdsRequest",
    "PostingSummary",
    "PostingUpdateResponse",
    "ReconciliationStatusResponse",
    "SessionCreate",
    "SessionListResponse",
    "SessionResponse",
    "SessionUpdate",
    "UnreconciledPostingsResponse",
    "TransferCommitRequest",
    "TransferCommitResponse",
    "TransferPreviewRequest",
    "TransferPreviewResponse",
]
