from backoffice.models.sales_order import SalesOrder
from backoffice.models.expense import Expense
from backoffice.models.audit_log import AuditLog
from backoffice.models.import_batch import ImportBatch
from backoffice.models.wallet import Wallet, WalletLedger
from backoffice.models.bank import BankAccount, BankTransaction, BankOpeningBalance, BankReportedBalance
from backoffice.models.commission import CeoCommissionReceipt, CeoCommissionSource
from backoffice.models.inventory import (
    InventoryItem,
    InventorySkuMapping,
    InventoryReceiptLayer,
    InventoryCogsAllocation,
    InventoryReturn,
)
from backoffice.models.ads import AdDailyPerformance
from backoffice.models.settlement import SettlementTransaction, UnsettledTransaction
from backoffice.models.analytics_preset import AnalyticsPreset
from backoffice.models.user_role import UserRole

__all__ = [
    "SalesOrder",
    "Expense",
    "AuditLog",
    "ImportBatch",
    "Wallet",
    "WalletLedger",
    "BankAccount",
    "BankTransaction",
    "BankOpeningBalance",
    "BankReportedBalance",
    "CeoCommissionReceipt",
    "CeoCommissionSource",
    "InventoryItem",
    "InventorySkuMapping",
    "InventoryReceiptLayer",
    "InventoryCogsAllocation",
    "InventoryReturn",
    "AdDailyPerformance",
    "SettlementTransaction",
    "UnsettledTransaction",
    "AnalyticsPreset",
    "UserRole",
]
