"""
User-facing message table.

Keyed by message code, then locale. Thai is the default locale of the
back-office; English is provided for API clients that ask for it.
"""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

SUPPORTED_LOCALES = ("th", "en")

MESSAGES: Dict[str, Dict[str, str]] = {
    # common
    "common.unexpected": {
        "th": "เกิดข้อผิดพลาดที่ไม่คาดคิด",
        "en": "Unexpected error",
    },
    "common.backend": {
        "th": "เกิดข้อผิดพลาด: {detail}",
        "en": "Error: {detail}",
    },
    "common.invalid_request": {
        "th": "ข้อมูลไม่ถูกต้อง: {detail}",
        "en": "Invalid request: {detail}",
    },
    "common.not_found": {
        "th": "ไม่พบข้อมูล",
        "en": "Not found",
    },
    "common.invalid_date_range": {
        "th": "ช่วงวันที่ไม่ถูกต้อง",
        "en": "Invalid date range",
    },
    "common.amount_positive": {
        "th": "จำนวนเงินต้องมากกว่า 0",
        "en": "Amount must be greater than 0",
    },
    "common.date_required": {
        "th": "กรุณาระบุวันที่",
        "en": "Date is required",
    },
    "common.no_export_data": {
        "th": "ไม่มีข้อมูลสำหรับ export",
        "en": "No data to export",
    },
    # auth
    "auth.unauthorized": {
        "th": "ไม่พบข้อมูลผู้ใช้ กรุณา login ใหม่",
        "en": "Not authenticated",
    },
    "auth.admin_only": {
        "th": "เฉพาะผู้ดูแลระบบเท่านั้น",
        "en": "Admin only",
    },
    # dashboard / P&L
    "pl.unavailable": {
        "th": "ไม่สามารถโหลดข้อมูล P&L ได้",
        "en": "Unable to load P&L data",
    },
    # expenses
    "expenses.date_required": {
        "th": "กรุณาระบุวันที่รายจ่าย",
        "en": "Expense date is required",
    },
    "expenses.invalid_category": {
        "th": "หมวดหมู่รายจ่ายไม่ถูกต้อง",
        "en": "Invalid expense category",
    },
    "expenses.not_found": {
        "th": "ไม่พบรายการค่าใช้จ่าย",
        "en": "Expense not found",
    },
    "expenses.paid_locked": {
        "th": "รายการที่ยืนยันจ่ายแล้วไม่สามารถแก้ไขจำนวนเงิน ประเภท หรือวันที่ได้",
        "en": "Paid expenses cannot change amount, category or date",
    },
    "expenses.paid_date_required": {
        "th": "กรุณาระบุวันที่จ่ายเงิน",
        "en": "Paid date is required",
    },
    "expenses.already_paid": {
        "th": "รายการนี้ยืนยันจ่ายแล้ว",
        "en": "Expense is already paid",
    },
    # wallets
    "wallets.wallet_required": {
        "th": "กรุณาเลือก wallet",
        "en": "Wallet is required",
    },
    "wallets.not_found": {
        "th": "ไม่พบ wallet ที่เลือก",
        "en": "Wallet not found",
    },
    "wallets.entry_not_found": {
        "th": "ไม่พบรายการที่ต้องการแก้ไข",
        "en": "Ledger entry not found",
    },
    "wallets.topup_direction": {
        "th": "TOP_UP ต้องเป็น direction=IN เท่านั้น (เพิ่มเงินเข้า wallet)",
        "en": "TOP_UP must have direction=IN",
    },
    "wallets.spend_direction": {
        "th": "SPEND ต้องเป็น direction=OUT เท่านั้น (เงินออกจาก wallet)",
        "en": "SPEND must have direction=OUT",
    },
    "wallets.refund_direction": {
        "th": "REFUND ต้องเป็น direction=IN เท่านั้น (เงินคืนเข้า wallet)",
        "en": "REFUND must have direction=IN",
    },
    "wallets.ads_manual_spend": {
        "th": "ห้ามสร้าง SPEND แบบ Manual สำหรับ ADS Wallet - ค่า Ad Spend ต้องมาจาก Ads Report เท่านั้น (IMPORTED)",
        "en": "Manual SPEND is not allowed on an ADS wallet; ad spend must come from an imported ads report",
    },
    "wallets.ads_spend_batch": {
        "th": "SPEND จาก Ads Report ต้องมี import_batch_id",
        "en": "Imported SPEND requires import_batch_id",
    },
    "wallets.ads_topup_manual": {
        "th": "TOP_UP สำหรับ ADS Wallet ต้องเป็น MANUAL เท่านั้น",
        "en": "TOP_UP on an ADS wallet must be MANUAL",
    },
    "wallets.topup_manual": {
        "th": "TOP_UP ควรเป็น MANUAL (การเติมเงินโดยผู้ใช้)",
        "en": "TOP_UP must be MANUAL",
    },
    "wallets.imported_batch": {
        "th": "รายการที่ import ต้องมี import_batch_id",
        "en": "Imported entries require import_batch_id",
    },
    "wallets.imported_readonly": {
        "th": "ไม่สามารถแก้ไขรายการที่ import มาได้ - ต้องแก้ไขจาก source file แล้ว re-import",
        "en": "Imported entries cannot be changed; fix the source file and re-import",
    },
    "wallets.imported_undeletable": {
        "th": "ไม่สามารถลบรายการที่ import มาได้ - ข้อมูลจาก report เท่านั้น",
        "en": "Imported entries cannot be deleted",
    },
    "wallets.duplicate_reference": {
        "th": "มีรายการที่ใช้ Reference ID นี้ใน wallet แล้ว",
        "en": "This wallet already has an entry with this reference id",
    },
    "wallets.invalid_type": {
        "th": "ประเภท wallet ไม่ถูกต้อง",
        "en": "Invalid wallet type",
    },
    "wallets.invalid_entry": {
        "th": "ประเภทรายการหรือ direction ไม่ถูกต้อง",
        "en": "Invalid entry type or direction",
    },
    # commission
    "commission.gross_positive": {
        "th": "จำนวน Commission ต้องมากกว่า 0",
        "en": "Commission amount must be greater than 0",
    },
    "commission.personal_negative": {
        "th": "จำนวนที่ใช้ส่วนตัวต้องไม่ติดลบ",
        "en": "Personal used amount cannot be negative",
    },
    "commission.transferred_negative": {
        "th": "จำนวนที่โอนให้บริษัทต้องไม่ติดลบ",
        "en": "Transferred amount cannot be negative",
    },
    "commission.balance_mismatch": {
        "th": "ยอดรวมไม่ตรง: {gross} ≠ {personal} + {transferred}",
        "en": "Amounts do not balance: {gross} ≠ {personal} + {transferred}",
    },
    "commission.platform_required": {
        "th": "กรุณาระบุ Platform",
        "en": "Platform is required",
    },
    "commission.date_required": {
        "th": "กรุณาระบุวันที่รับ Commission",
        "en": "Commission date is required",
    },
    "commission.duplicate": {
        "th": "มี Commission record สำหรับวันที่ {date} และ Platform \"{platform}\" อยู่แล้ว",
        "en": "A commission record for {date} and platform \"{platform}\" already exists",
    },
    "commission.bank_txn_declared": {
        "th": "รายการธนาคารนี้ถูก declare เป็น Commission ไปแล้ว",
        "en": "This bank transaction has already been declared as commission",
    },
    "commission.bank_txn_not_found": {
        "th": "ไม่พบรายการธนาคารนี้หรือคุณไม่มีสิทธิ์เข้าถึง",
        "en": "Bank transaction not found",
    },
    "commission.not_a_source": {
        "th": "บัญชีธนาคารนี้ไม่ได้ถูกเลือกเป็นแหล่งเงิน Commission",
        "en": "This bank account is not a commission source",
    },
    "commission.no_sources": {
        "th": "กรุณาเลือกบัญชีธนาคารที่เป็นแหล่งเงิน Commission ก่อน",
        "en": "Select commission source bank accounts first",
    },
    "commission.wallet_missing": {
        "th": "ไม่พบ DIRECTOR_LOAN wallet กรุณาสร้าง wallet ประเภท DIRECTOR_LOAN ก่อน",
        "en": "No DIRECTOR_LOAN wallet; create one first",
    },
    "commission.director_loan_warning": {
        "th": "Commission record ถูกสร้างแล้ว แต่ไม่สามารถสร้าง Director Loan entry ได้: {reason}",
        "en": "Commission record created, but the director loan entry could not be created: {reason}",
    },
    "commission.ledger_warning": {
        "th": "Commission record ถูกสร้างแล้ว แต่ไม่สามารถสร้าง wallet_ledger entry ได้: {reason}",
        "en": "Commission record created, but the wallet ledger entry could not be created: {reason}",
    },
    # inventory / sku mappings
    "inventory.mapping_fields_required": {
        "th": "channel, marketplace_sku และ sku_internal จำเป็นต้องระบุ",
        "en": "channel, marketplace_sku and sku_internal are required",
    },
    "inventory.item_not_found": {
        "th": "ไม่พบสินค้า SKU: {sku}",
        "en": "Inventory item not found: {sku}",
    },
    "inventory.qty_positive": {
        "th": "จำนวนต้องมากกว่า 0",
        "en": "Quantity must be greater than 0",
    },
    "inventory.insufficient_stock": {
        "th": "สต็อกไม่พอสำหรับ SKU {sku}: ต้องการ {needed} คงเหลือ {available}",
        "en": "Insufficient stock for SKU {sku}: need {needed}, on hand {available}",
    },
    "inventory.duplicate_ref": {
        "th": "มี receipt layer สำหรับเอกสาร {ref_type} {ref_id} อยู่แล้ว",
        "en": "A receipt layer for {ref_type} {ref_id} already exists",
    },
    "inventory.mapping_not_found": {
        "th": "ไม่พบ SKU mapping",
        "en": "SKU mapping not found",
    },
    # returns
    "returns.mapping_missing": {
        "th": "ไม่พบ mapping สำหรับ {channel} SKU: {sku}",
        "en": "No SKU mapping for {channel} SKU: {sku}",
    },
    "returns.mapping_item": {
        "th": "SKU {sku}: {reason}",
        "en": "SKU {sku}: {reason}",
    },
    "returns.mapping_required": {
        "th": "กรุณาตั้งค่า SKU mapping ก่อน:\n{details}",
        "en": "Configure SKU mappings first:\n{details}",
    },
    "returns.no_items": {
        "th": "ไม่มีรายการที่ต้องการคืน",
        "en": "No items to return",
    },
    "returns.line_not_found": {
        "th": "ไม่พบรายการสินค้า {line_id}",
        "en": "Line item {line_id} not found",
    },
    "returns.not_owner": {
        "th": "ไม่สามารถคืนสินค้าของคำสั่งซื้อที่ไม่ใช่ของคุณ",
        "en": "Cannot return orders you do not own",
    },
    "returns.qty_positive": {
        "th": "จำนวนคืนต้องมากกว่า 0 สำหรับ SKU {sku}",
        "en": "Return quantity must be positive for SKU {sku}",
    },
    "returns.qty_exceeds": {
        "th": "Cannot return {qty} units of SKU {sku}. Only {available} available (sold: {sold}, already returned: {returned})",
        "en": "Cannot return {qty} units of SKU {sku}. Only {available} available (sold: {sold}, already returned: {returned})",
    },
    "returns.cancel_after_ship": {
        "th": "ไม่สามารถใช้ CANCEL_BEFORE_SHIP สำหรับ SKU {sku} เพราะจัดส่งแล้ว",
        "en": "Cannot use CANCEL_BEFORE_SHIP for SKU {sku}. Order already shipped.",
    },
    "returns.not_found": {
        "th": "ไม่พบรายการคืนสินค้า",
        "en": "Return not found or not owned by user",
    },
    "returns.undo_of_undo": {
        "th": "ไม่สามารถยกเลิกรายการ UNDO ได้",
        "en": "Cannot undo an undo action",
    },
    "returns.already_undone": {
        "th": "รายการคืนสินค้านี้ถูกยกเลิกไปแล้ว",
        "en": "This return has already been undone",
    },
    # bank
    "bank.account_not_found": {
        "th": "ไม่พบบัญชีธนาคาร",
        "en": "Bank account not found or unauthorized",
    },
    "bank.account_fields_required": {
        "th": "กรุณาระบุชื่อธนาคารและเลขที่บัญชี",
        "en": "Bank name and account number are required",
    },
    "bank.already_imported": {
        "th": "ไฟล์นี้ถูก import ไปแล้ว",
        "en": "This file has already been imported",
    },
    "bank.invalid_mode": {
        "th": "รูปแบบการ import ไม่ถูกต้อง: {mode}",
        "en": "Invalid import mode: {mode}",
    },
    "bank.no_transactions": {
        "th": "ไม่พบรายการที่ import ได้ในไฟล์",
        "en": "No valid transactions found in file",
    },
    "bank.manual_mapping_required": {
        "th": "ไม่สามารถตรวจจับรูปแบบไฟล์ได้ กรุณากำหนด column mapping เอง",
        "en": "Cannot auto-detect format. Please use manual column mapping.",
    },
    "bank.file_unreadable": {
        "th": "ไม่สามารถอ่านไฟล์ได้: {detail}",
        "en": "Could not read file: {detail}",
    },
    # ads
    "ads.already_imported": {
        "th": "ไฟล์นี้ถูก import ไปแล้ว",
        "en": "This file has already been imported",
    },
    "ads.report_format": {
        "th": "รูปแบบไฟล์ Ads ไม่ถูกต้อง: {detail}",
        "en": "Invalid ads report: {detail}",
    },
    "ads.wallet_not_ads": {
        "th": "wallet ที่เลือกไม่ใช่ประเภท ADS",
        "en": "Selected wallet is not an ADS wallet",
    },
    # sales
    "sales.already_imported": {
        "th": "ไฟล์นี้ถูก import ไปแล้ว ({file_name}, batch {batch_id}) หากต้องการ import ใหม่ให้ใช้การแทนที่ (replace)",
        "en": "This file was already imported ({file_name}, batch {batch_id}). Use replace to import it again",
    },
    "sales.import_in_progress": {
        "th": "ไฟล์นี้กำลัง import อยู่ กรุณารอสักครู่",
        "en": "This file is already being imported",
    },
    "sales.file_format": {
        "th": "รูปแบบไฟล์ยอดขายไม่ถูกต้อง: {detail}",
        "en": "Invalid sales file: {detail}",
    },
    "sales.no_valid_rows": {
        "th": "ไม่มีแถวที่ valid (ทุกแถวมี error)",
        "en": "No valid rows in file",
    },
    "sales.replace_hash_mismatch": {
        "th": "ไฟล์ไม่ตรงกับ batch เดิม ไม่สามารถแทนที่ได้",
        "en": "File hash mismatch - cannot replace a different file",
    },
    "sales.replace_not_allowed": {
        "th": "แทนที่ได้เฉพาะ batch ที่ import สำเร็จแล้ว",
        "en": "Only a successful import can be replaced",
    },
    # settlement
    "settlement.marketplace_required": {
        "th": "กรุณาระบุ marketplace",
        "en": "Marketplace is required",
    },
    "settlement.no_rows": {
        "th": "ไม่พบรายการสำหรับ import",
        "en": "No rows to import",
    },
    "settlement.duplicate_txn": {
        "th": "มีรายการ txn_id ซ้ำกับข้อมูลที่มีอยู่",
        "en": "Transaction id already exists",
    },
    # import batches
    "imports.not_found": {
        "th": "ไม่พบ import batch",
        "en": "Import batch not found",
    },
    # analytics
    "analytics.invalid_expression": {
        "th": "สูตรคำนวณไม่ถูกต้อง: {detail}",
        "en": "Invalid expression: {detail}",
    },
    "analytics.no_metrics": {
        "th": "กรุณาเลือก metric อย่างน้อย 1 รายการ",
        "en": "Select at least one metric",
    },
    "analytics.preset_name_required": {
        "th": "กรุณาระบุชื่อ preset",
        "en": "Preset name is required",
    },
    "analytics.preset_duplicate": {
        "th": "มี preset ชื่อ {name} อยู่แล้ว",
        "en": "A preset named {name} already exists",
    },
    "analytics.preset_not_found": {
        "th": "ไม่พบ preset",
        "en": "Preset not found",
    },
}


def normalize_locale(value: Optional[str], default: str = "th") -> str:
    """Pick a supported locale from an Accept-Language style value."""
    if not value:
        return default
    primary = value.split(",")[0].strip().lower()
    lang = primary.split("-")[0].split(";")[0]
    return lang if lang in SUPPORTED_LOCALES else default


def _render_param(value: Any, locale: str) -> Any:
    """Nested notices render in the same locale; lists render one per line."""
    if isinstance(value, Notice):
        return value.render(locale)
    if isinstance(value, (list, tuple)):
        return "\n".join(str(_render_param(item, locale)) for item in value)
    return value


def render_message(code: str, locale: str = "th", **params: Any) -> str:
    entry = MESSAGES.get(code)
    if entry is None:
        logger.warning(f"Missing message code: {code}")
        return code
    template = entry.get(locale) or entry.get("en") or code
    try:
        return template.format(**{key: _render_param(value, locale) for key, value in params.items()})
    except (KeyError, IndexError):
        logger.warning(f"Message {code} missing params, got {sorted(params)}")
        return template


class Notice:
    """A deferred user-facing message, rendered once the locale is known."""

    def __init__(self, code: str, **params: Any):
        self.code = code
        self.params = params

    def render(self, locale: str = "th") -> str:
        return render_message(self.code, locale, **self.params)

    def __repr__(self):
        return f"<Notice {self.code} {self.params}>"
