"""API route aggregation"""
from fastapi import APIRouter

from backoffice.api.endpoints import (
    ads, analytics, bank, commission, daily_pl, dashboard,
    expenses, import_batches, inventory, reconcile, returns, sales, wallets,
)

api_router = APIRouter()

# Reporting
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])
api_router.include_router(daily_pl.router, prefix="/daily-pl", tags=["Daily P&L"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["Analytics builder"])

# Money in / money out
api_router.include_router(expenses.router, prefix="/expenses", tags=["Expenses"])
api_router.include_router(wallets.router, prefix="/wallets", tags=["Wallets"])
api_router.include_router(commission.router, prefix="/ceo-commission", tags=["CEO commission"])
api_router.include_router(ads.router, prefix="/ads", tags=["Ads"])
api_router.include_router(bank.router, prefix="/bank", tags=["Bank"])
api_router.include_router(reconcile.router, prefix="/reconcile", tags=["Settlement reconciliation"])

# Sales
api_router.include_router(sales.router, prefix="/sales", tags=["Sales orders"])

# Stock
api_router.include_router(inventory.router, prefix="/inventory", tags=["Inventory"])
api_router.include_router(returns.router, prefix="/returns", tags=["Returns"])

# System
api_router.include_router(import_batches.router, prefix="/import-batches", tags=["Import batches"])
