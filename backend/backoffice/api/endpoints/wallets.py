"""Wallets and wallet ledger API"""

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.responses import ok
from backoffice.core.deps import get_current_user_id, get_db
from backoffice.schemas.common import AnyResponse
from backoffice.schemas.wallet import LedgerEntryCreate, LedgerEntryUpdate, LedgerFilters, WalletCreate
from backoffice.services import wallets as wallet_service

router = APIRouter()


@router.get("/", response_model=AnyResponse)
async def list_wallets(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    active_only: bool = Query(True),
) -> Any:
    return ok(await wallet_service.list_wallets(db, user_id, active_only))


@router.post("/", response_model=AnyResponse)
async def create_wallet(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    wallet_in: WalletCreate,
) -> Any:
    return ok(await wallet_service.create_wallet(db, user_id, wallet_in))


@router.get("/ledger", response_model=AnyResponse)
async def list_ledger_entries(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    filters: LedgerFilters = Depends(),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> Any:
    return ok(await wallet_service.list_ledger_entries(db, user_id, filters, page, limit))


@router.post("/ledger", response_model=AnyResponse)
async def create_ledger_entry(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    entry_in: LedgerEntryCreate,
) -> Any:
    """Manual entry; the wallet type decides which entry types are allowed"""
    return ok(await wallet_service.create_ledger_entry(db, user_id, entry_in))


@router.get("/ledger/export", response_model=AnyResponse)
async def export_ledger(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    filters: LedgerFilters = Depends(),
) -> Any:
    return ok(await wallet_service.export_wallet_ledger(db, user_id, filters))


@router.put("/ledger/{entry_id}", response_model=AnyResponse)
async def update_ledger_entry(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    entry_id: str,
    entry_in: LedgerEntryUpdate,
) -> Any:
    return ok(await wallet_service.update_ledger_entry(db, user_id, entry_id, entry_in))


@router.delete("/ledger/{entry_id}", response_model=AnyResponse)
async def delete_ledger_entry(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    entry_id: str,
) -> Any:
    return ok(await wallet_service.delete_ledger_entry(db, user_id, entry_id))


@router.get("/{wallet_id}/balance", response_model=AnyResponse)
async def wallet_balance(
    *,
    db: AsyncSession = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    wallet_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
) -> Any:
    """Opening, movements by type and closing balance for the range"""
    return ok(await wallet_service.get_wallet_balance(db, user_id, wallet_id, start_date, end_date))
