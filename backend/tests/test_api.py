import json

from backoffice.models import UserRole, Wallet

from conftest import USER


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_missing_identity_is_rejected(client):
    response = await client.get("/api/expenses/", headers={"Accept-Language": "en"})
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Not authenticated", "error_kind": "auth"}


async def test_thai_is_the_default_locale(client):
    response = await client.get("/api/expenses/")
    assert response.json()["error"] == "ไม่พบข้อมูลผู้ใช้ กรุณา login ใหม่"


async def test_expense_round_trip(client, auth_headers):
    response = await client.post(
        "/api/expenses/",
        headers=auth_headers,
        json={"expense_date": "2026-03-01", "category": "Operating", "amount": 99.5},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["warning"] is None
    assert body["data"]["amount"] == 99.5

    listed = (await client.get("/api/expenses/", headers=auth_headers)).json()
    assert listed["data"]["total"] == 1


async def test_service_rejection_envelope(client, auth_headers):
    response = await client.post(
        "/api/expenses/",
        headers=auth_headers,
        json={"expense_date": "2026-03-01", "category": "Travel", "amount": 10},
    )
    assert response.status_code == 422
    assert response.json() == {"success": False, "error": "Invalid expense category", "error_kind": "validation"}


async def test_request_validation_envelope(client, auth_headers):
    response = await client.post("/api/expenses/", headers=auth_headers, json={"category": "Operating"})
    assert response.status_code == 422
    body = response.json()
    assert body["error_kind"] == "validation"
    assert body["error"].startswith("Invalid request: ")
    assert "amount" in body["error"]


async def test_commission_warning_is_rendered(client, auth_headers):
    response = await client.post(
        "/api/ceo-commission/",
        headers=auth_headers,
        json={
            "commission_date": "2026-03-01",
            "platform": "TikTok",
            "gross_amount": 1000,
            "personal_used_amount": 400,
            "transferred_to_company_amount": 600,
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["data"]["platform"] == "TikTok"
    assert body["warning"] == (
        "Commission record created, but the director loan entry could not be created: "
        "No DIRECTOR_LOAN wallet; create one first"
    )


async def test_commission_without_warning(client, auth_headers, session_factory):
    async with session_factory() as session:
        session.add(Wallet(created_by=USER, name="Director loan", wallet_type="DIRECTOR_LOAN"))
        await session.commit()

    response = await client.post(
        "/api/ceo-commission/",
        headers=auth_headers,
        json={"commission_date": "2026-03-01", "platform": "Shopee", "gross_amount": 50, "transferred_to_company_amount": 50},
    )
    assert response.json()["warning"] is None


async def test_backfill_requires_admin(client, auth_headers, session_factory):
    response = await client.post("/api/returns/backfill-stock", headers=auth_headers)
    assert response.status_code == 403
    assert response.json()["error"] == "Admin only"

    async with session_factory() as session:
        session.add(UserRole(user_id=USER, role="admin"))
        await session.commit()

    response = await client.post("/api/returns/backfill-stock", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["data"]["total"] == 0


async def test_bank_statement_upload(client, auth_headers):
    account = (
        await client.post(
            "/api/bank/accounts",
            headers=auth_headers,
            json={"bank_name": "KBANK", "account_number": "123-4-56789-0"},
        )
    ).json()["data"]

    content = b"When,What,Out,In\n05/03/2026,Coffee,45,\n06/03/2026,Refund,,10\n"
    mapping = {"txn_date": "When", "description": "What", "withdrawal": "Out", "deposit": "In"}
    response = await client.post(
        f"/api/bank/accounts/{account['id']}/import",
        headers=auth_headers,
        files={"file": ("odd.csv", content, "text/csv")},
        data={"mode": "append", "mapping": json.dumps(mapping)},
    )
    assert response.status_code == 200
    assert response.json()["data"]["inserted"] == 2

    response = await client.post(
        f"/api/bank/accounts/{account['id']}/import",
        headers=auth_headers,
        files={"file": ("odd.csv", content, "text/csv")},
        data={"mapping": "{not json"},
    )
    assert response.status_code == 422
    assert response.json()["error"].startswith("Invalid request: mapping")


async def test_analytics_run_over_http(client, auth_headers):
    response = await client.post(
        "/api/analytics/run",
        headers=auth_headers,
        json={"metrics": ["revenue"], "dateRange": {"start": "2026-03-01", "end": "2026-03-01"}},
    )
    assert response.status_code == 200
    assert response.json()["data"]["rows"] == [{"date": "2026-03-01", "values": {"revenue": 0.0}, "computed": None}]


async def test_sales_import_over_http(client, auth_headers):
    content = (
        "Order ID,Product Name,Quantity,SKU Subtotal After Discount,Created Time,Order Status\n"
        "Platform unique order ID.,Product name.,Quantity.,Subtotal.,Create time.,Order status.\n"
        "580001,Cream,2,1200,01/03/2026 10:30:00,Completed\n"
    ).encode("utf-8")
    upload = {"file": ("OrderSKUList.csv", content, "text/csv")}

    preview = await client.post("/api/sales/import/preview", headers=auth_headers, files=upload)
    assert preview.status_code == 200
    assert preview.json()["data"]["import_type"] == "tiktok_shop"
    assert preview.json()["data"]["sample_rows"][0]["unit_price"] == 600.0

    response = await client.post("/api/sales/import", headers=auth_headers, files=upload)
    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["warning"] is None
    assert body["data"]["inserted"] == 1
    assert body["data"]["replaced_batch_id"] is None
    batch_id = body["data"]["batch_id"]

    again = await client.post("/api/sales/import", headers=auth_headers, files=upload)
    assert again.status_code == 409
    assert batch_id in again.json()["error"]

    replaced = await client.post(f"/api/sales/import/{batch_id}/replace", headers=auth_headers, files=upload)
    assert replaced.status_code == 200
    assert replaced.json()["data"]["replaced_batch_id"] == batch_id
    assert replaced.json()["data"]["deleted"] == 1

    listing = (await client.get("/api/sales/", headers=auth_headers)).json()["data"]
    assert listing["total"] == 1
    assert listing["data"][0]["status"] == "completed"
    assert set(listing) == {"data", "total", "page", "limit"}


async def test_openapi_declares_envelopes(client):
    schema = (await client.get("/api/openapi.json")).json()
    responses = schema["paths"]["/api/sales/import"]["post"]["responses"]
    ref = responses["200"]["content"]["application/json"]["schema"]["$ref"]
    envelope = schema["components"]["schemas"][ref.split("/")[-1]]
    assert set(envelope["properties"]) == {"success", "data", "warning"}


async def test_import_batch_listing_uses_batch_model(client, auth_headers):
    content = b"Date,Campaign name,Cost,GMV,Orders\n2026-03-01,Summer Sale,100,500,5\n"
    await client.post("/api/ads/import", headers=auth_headers, files={"file": ("ads.csv", content, "text/csv")})

    body = (await client.get("/api/import-batches/", headers=auth_headers)).json()
    assert body["success"] is True
    batch = body["data"]["data"][0]
    assert batch["report_type"] == "tiktok_ads_product"
    assert batch["status"] == "success"
    assert batch["inserted_count"] == 1
    assert batch["date_min"] == "2026-03-01"

    cleaned = (await client.post("/api/import-batches/cleanup", headers=auth_headers)).json()
    assert cleaned["data"] == {"cleaned": 0}
