"""Bank accounts, statements and balance checks API"""

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db
from backoffice.core.errors import validation_error
from backoffice.schemas.bank import (
    BankAccountCreate,
    BankTransactionFilters,
    ColumnMapping,
    OpeningBalanceUpsert,
    ReportedBalanceCreate,
)
from backoffice.schemas.common import AnyResponse
from backoffice.services import bank as bank_service

router = APIRouter()


def _parse_mapping(raw: Optional[str]) -> Optional[ColumnMapping]:
    if not raw or not raw.strip():
        return None
    try:
        return ColumnMapping.model_validate_json(raw)
    except ValidationError as e:
        raise validation_error("common.invalid_request", detail=f"mapping: {e.error_count()} invalid field(s)")


@router.get("/accounts", response_model=AnyResponse)
async def list_accounts(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> Any:
    return ok(await bank_service.list_bank_accounts(db, user_id))


@router.post("/accounts", response_model=AnyResponse)
async def create_account(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    account_in: BankAccountCreate,
) -> Any:
    return ok(await bank_service.create_bank_account(db, user_id, account_in))


@router.get("/accounts/{account_id}/daily-summary", response_model=AnyResponse)
async def daily_summary(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    account_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
) -> Any:
    return ok(await bank_service.get_bank_daily_summary(db, user_id, account_id, start_date, end_date))


@router.get("/accounts/{account_id}/transactions", response_model=AnyResponse)
async def list_transactions(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    account_id: str,
    filters: BankTransactionFilters = Depends(),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
) -> Any:
    return ok(await bank_service.get_bank_transactions(db, user_id, account_id, filters, page, limit))


@router.get("/accounts/{account_id}/export", response_model=AnyResponse)
async def export_transactions(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    account_id: str,
    filters: BankTransactionFilters = Depends(),
) -> Any:
    return ok(await bank_service.export_bank_transactions(db, user_id, account_id, filters))


@router.get("/accounts/{account_id}/opening-balance", response_model=AnyResponse)
async def get_opening_balance(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    account_id: str,
) -> Any:
    return ok(await bank_service.get_opening_balance(db, user_id, account_id))


@router.put("/accounts/{account_id}/opening-balance", response_model=AnyResponse)
async def set_opening_balance(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    account_id: str,
    data: OpeningBalanceUpsert,
) -> Any:
    return ok(await bank_service.upsert_opening_balance(db, user_id, account_id, data))


@router.get("/accounts/{account_id}/reported-balance", response_model=AnyResponse)
async def get_reported_balance(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    account_id: str,
    as_of: Optional[date] = Query(None),
) -> Any:
    return ok(await bank_service.get_reported_balance(db, user_id, account_id, as_of))


@router.post("/accounts/{account_id}/reported-balance", response_model=AnyResponse)
async def save_reported_balance(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    account_id: str,
    data: ReportedBalanceCreate,
) -> Any:
    return ok(await bank_service.save_reported_balance(db, user_id, account_id, data))


@router.get("/accounts/{account_id}/balance-summary", response_model=AnyResponse)
async def balance_summary(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    account_id: str,
    as_of: date = Query(...),
) -> Any:
    """Expected vs bank-reported balance"""
    return ok(await bank_service.get_bank_balance_summary(db, user_id, account_id, as_of))


@router.post("/import/preview", response_model=AnyResponse)
async def preview_statement(
    *,
    user_id: str = Depends(get_current_user_id),
    file: UploadFile = File(...),
    mapping: Optional[str] = Form(None),
) -> Any:
    """Parse a statement without saving; returns the suggested column mapping"""
    content = await file.read()
    return ok(bank_service.preview_bank_statement(content, file.filename or "statement.csv", _parse_mapping(mapping)))


@router.post("/accounts/{account_id}/import", response_model=AnyResponse)
async def import_statement(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    account_id: str,
    file: UploadFile = File(...),
    mode: str = Form("append"),
    mapping: Optional[str] = Form(None),
) -> Any:
    content = await file.read()
    result = await bank_service.import_bank_statement(
        db,
        user_id,
        account_id,
        content,
        file.filename or "statement.csv",
        mode=mode,
        mapping=_parse_mapping(mapping),
    )
    return ok(result)
