"""CEO commission API"""

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db, get_locale
from backoffice.schemas.common import AnyResponse
from backoffice.schemas.commission import (
    CandidateFilters,
    CommissionCreate,
    CommissionFilters,
    CommissionFromBankCreate,
    CommissionSourcesUpdate,
)
from backoffice.services import commission as commission_service

router = APIRouter()


@router.get("/", response_model=AnyResponse)
async def list_receipts(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    filters: CommissionFilters = Depends(),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> Any:
    return ok(await commission_service.list_commission_receipts(db, user_id, filters, page, limit))


@router.post("/", response_model=AnyResponse)
async def create_receipt(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    locale: str = Depends(get_locale),
    data: CommissionCreate,
) -> Any:
    """Record a commission; the company-transferred part also tops up the director loan wallet"""
    result = await commission_service.create_commission_receipt(db, user_id, data)
    return ok(result, locale=locale)


@router.post("/from-bank", response_model=AnyResponse)
async def create_receipt_from_bank(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    locale: str = Depends(get_locale),
    data: CommissionFromBankCreate,
) -> Any:
    result = await commission_service.create_commission_from_bank_transaction(db, user_id, data)
    return ok(result, locale=locale)


@router.get("/summary", response_model=AnyResponse)
async def commission_summary(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    filters: CommissionFilters = Depends(),
) -> Any:
    return ok(await commission_service.get_commission_summary(db, user_id, filters))


@router.get("/platforms", response_model=AnyResponse)
async def commission_platforms(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> Any:
    return ok(await commission_service.get_commission_platforms(db, user_id))


@router.get("/director-loan-balance", response_model=AnyResponse)
async def director_loan_balance(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> Any:
    return ok(await commission_service.get_director_loan_balance(db, user_id))


@router.get("/export", response_model=AnyResponse)
async def export_receipts(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    filters: CommissionFilters = Depends(),
) -> Any:
    return ok(await commission_service.export_commission_receipts(db, user_id, filters))


@router.get("/sources", response_model=AnyResponse)
async def commission_sources(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> Any:
    return ok(await commission_service.get_commission_sources(db, user_id))


@router.put("/sources", response_model=AnyResponse)
async def update_sources(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    data: CommissionSourcesUpdate,
) -> Any:
    return ok(await commission_service.update_commission_sources(db, user_id, data.bank_account_ids))


@router.get("/candidates", response_model=AnyResponse)
async def candidate_transactions(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    filters: CandidateFilters = Depends(),
) -> Any:
    """Deposits on the source accounts that are not declared yet"""
    candidates, total = await commission_service.get_candidate_bank_transactions(db, user_id, filters)
    return ok({"data": candidates, "total": total})
