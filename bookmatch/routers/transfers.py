"""Transfer matching API router."""

from fastapi import APIRouter, HTTPException, status

from bookmatch.deps import DbSession, Store
from bookmatch.logger import get_logger
from bookmatch.schemas import (
    TransferCommitRequest,
    TransferCommitResponse,
    TransferPreviewRequest,
    TransferPreviewResponse,
)
from bookmatch.services import (
    AccountNotFoundError,
    DateRange,
    InvalidDateRangeError,
    SameAccountTransferError,
    TransferPairRequest,
    commit_transfer_matches,
    preview_transfer_matches,
)

router = APIRouter(prefix="/transfers", tags=["transfers"])
logger = get_logger(__name__)


@router.post("/preview", response_model=TransferPreviewResponse)
async def preview(payload: TransferPreviewRequest, store: Store) -> TransferPreviewResponse:
    """Pair suspected transfer halves between two accounts."""
    try:
        date_range = (
            DateRange(payload.start_date, payload.end_date)
            if payload.start_date or payload.end_date
            else None
        )
        result = await preview_transfer_matches(store, payload.account_a, payload.account_b, date_range)
    except AccountNotFoundError as e:
        logger.debug("Transfer preview account not found", error=str(e))
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except (InvalidDateRangeError, SameAccountTransferError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return TransferPreviewResponse.model_validate(result)


@router.post("/commit", response_model=TransferCommitResponse)
async def commit(payload: TransferCommitRequest, db: DbSession, store: Store) -> TransferCommitResponse:
    """Merge accepted pairs. Failed pairs are reported in ``errors``, not raised."""
    pairs = [
        TransferPairRequest(id_a=pair.id_a, id_b=pair.id_b, date=pair.date, payee=pair.payee)
        for pair in payload.pairs
    ]
    result = await commit_transfer_matches(store, pairs)
    await db.commit()
    return TransferCommitResponse.model_validate(result)
