"""
HTTP 接口
"""
import io

import pandas as pd


def create_body(ids, qty=2, **detail):
    return {
        "order": {"orderer_customer_id": ids.retail},
        "order_detail": {
            "detail": detail,
            "order_products": [{"product_id": ids.kaos, "product_variant_id": ids.red, "product_qty": qty}],
        },
    }


class TestOrderRoutes:
    def test_order_lifecycle(self, api_env):
        client, ids = api_env.client, api_env.ids

        created = client.post("/api/orders", json=create_body(ids, code="API-1"))
        assert created.status_code == 201
        body = created.json()
        assert body["success"] is True
        assert body["statusCode"] == 201
        order_id = body["data"]["id"]

        fetched = client.get(f"/api/orders/{order_id}")
        assert fetched.status_code == 200
        assert fetched.json()["data"]["detail"]["code"] == "API-1"

        updated = client.patch(
            f"/api/orders/{order_id}",
            json={"order_detail": {"order_products": [
                {"product_id": ids.kaos, "product_variant_id": ids.red, "product_qty": 4}
            ]}},
        )
        assert updated.status_code == 200
        assert updated.json()["data"]["detail"]["final_price"] == 400.0

        listed = client.get("/api/orders", params={"code": "API"})
        assert listed.json()["data"]["total"] == 1

        cancelled = client.post(f"/api/orders/{order_id}/cancel")
        assert cancelled.status_code == 200
        assert cancelled.json()["data"]["detail"]["payment_status"] == "CANCEL"

        again = client.post(f"/api/orders/{order_id}/cancel")
        assert again.status_code == 409
        assert again.json()["success"] is False

        deleted = client.delete(f"/api/orders/{order_id}")
        assert deleted.status_code == 200
        assert client.get(f"/api/orders/{order_id}").status_code == 404

    def test_error_status_codes(self, api_env):
        client, ids = api_env.client, api_env.ids

        too_many = client.post("/api/orders", json=create_body(ids, qty=50))
        assert too_many.status_code == 422
        assert too_many.json()["data"]["available"] == 10

        invalid = client.post("/api/orders", json=create_body(ids, other_fees={"tip": 1.0}))
        assert invalid.status_code == 400
        assert invalid.json()["data"]["errors"]

        missing = client.patch("/api/orders/nope", json={"order": {"note": "x"}})
        assert missing.status_code == 404

    def test_list_filters_are_typed_query_params(self, api_env):
        client, ids = api_env.client, api_env.ids
        client.post("/api/orders", json=create_body(ids, qty=1, code="F-1"))

        found = client.get("/api/orders", params={"customer_category": "CUSTOMER", "unavailable_receipt": "true"})
        assert found.status_code == 200
        assert found.json()["data"]["total"] == 1

        for params in ({"order_year": 10000}, {"page": 0}, {"payment_status": "LUNAS"}):
            resp = client.get("/api/orders", params=params)
            assert resp.status_code == 400
            assert resp.json()["success"] is False
            assert resp.json()["data"]["errors"]

        assert client.get("/api/orders/summary", params={"order_month": 13}).status_code == 400

    def test_summary(self, api_env):
        client, ids = api_env.client, api_env.ids
        client.post("/api/orders", json=create_body(ids, qty=1))

        resp = client.get("/api/orders/summary")

        assert resp.status_code == 200
        assert resp.json()["data"]["order_count"] == 1
        assert resp.json()["data"]["item_count"] == 1


class TestUploadRoutes:
    def test_upload_enqueues_job(self, api_env):
        client = api_env.client
        buffer = io.BytesIO()
        pd.DataFrame({"下单客户": ["Budi"], "商品及数量": ["Topi (SKU: TOPI-1) x1"]}).to_excel(buffer, index=False)

        resp = client.post(
            "/api/upload/orders",
            files={"file": ("orders.xlsx", buffer.getvalue(), "application/octet-stream")},
        )

        assert resp.status_code == 200
        job_id = resp.json()["job_id"]

        status = client.get(f"/api/upload/jobs/{job_id}")
        assert status.status_code == 200
        assert status.json()["status"] == "queued"

    def test_rejects_non_excel(self, api_env):
        resp = api_env.client.post("/api/upload/orders", files={"file": ("orders.csv", b"a,b", "text/csv")})
        assert resp.status_code == 400

    def test_unknown_job(self, api_env):
        assert api_env.client.get("/api/upload/jobs/missing").status_code == 404
