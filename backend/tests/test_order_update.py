"""
更新订单（库存按差额调整）
"""
import pytest

from backoffice.services.order_service import OrderService

pytestmark = pytest.mark.anyio


def line(product_id, variant_id=None, qty=1):
    item = {"product_id": product_id, "product_qty": qty}
    if variant_id:
        item["product_variant_id"] = variant_id
    return item


@pytest.fixture
def create(db, make_payload):
    async def _create(customer_id, lines, **detail):
        resp = await OrderService(db).create_order(make_payload(customer_id, lines, **detail))
        assert resp.success, resp.message
        return resp.data["id"]

    return _create


def lines_update(*lines):
    return {"order_detail": {"order_products": list(lines)}}


class TestLineReconciliation:
    async def test_quantity_increase_reserves_only_the_difference(self, db, ids, create, stock_of):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 3)])
        assert await stock_of(ids.red) == 7

        resp = await OrderService(db).update_order(order_id, lines_update(line(ids.kaos, ids.red, 5)))

        assert resp.success, resp.message
        assert await stock_of(ids.red) == 5
        assert resp.data["detail"]["final_price"] == pytest.approx(500.0)
        assert [p["product_qty"] for p in resp.data["detail"]["products"]] == [5]

    async def test_quantity_decrease_releases_the_difference(self, db, ids, create, stock_of):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 5)])

        resp = await OrderService(db).update_order(order_id, lines_update(line(ids.kaos, ids.red, 2)))

        assert resp.success, resp.message
        assert await stock_of(ids.red) == 8

    async def test_switching_variant(self, db, ids, create, stock_of):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 3)])

        resp = await OrderService(db).update_order(order_id, lines_update(line(ids.kaos, ids.blue, 2)))

        assert resp.success, resp.message
        assert await stock_of(ids.red) == 10
        assert await stock_of(ids.blue) == 3

    async def test_removed_line_is_released(self, db, ids, create, stock_of):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 2), line(ids.kaos, ids.blue, 1)])
        assert await stock_of(ids.blue) == 4

        resp = await OrderService(db).update_order(order_id, lines_update(line(ids.kaos, ids.red, 2)))

        assert resp.success, resp.message
        assert await stock_of(ids.red) == 8
        assert await stock_of(ids.blue) == 5
        assert len(resp.data["detail"]["products"]) == 1

    async def test_increase_beyond_stock_keeps_previous_state(self, db, ids, create, stock_of):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 3)])
        service = OrderService(db)

        resp = await service.update_order(order_id, lines_update(line(ids.kaos, ids.red, 14)))

        assert resp.status_code == 422
        assert resp.data["available"] == 7
        assert resp.data["requested"] == 11
        assert await stock_of(ids.red) == 7

        current = await service.get_order(order_id)
        assert [p["product_qty"] for p in current.data["detail"]["products"]] == [3]

    async def test_empty_line_set_is_rejected(self, db, ids, create):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 1)])

        resp = await OrderService(db).update_order(order_id, lines_update())

        assert resp.status_code == 400


class TestRepricing:
    async def test_fee_change_reprices_from_snapshot(self, db, ids, create, stock_of):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 2)])

        resp = await OrderService(db).update_order(
            order_id,
            {"order_detail": {"detail": {"other_fees": {"shipping_cost": {"cost": 20.0}}}}},
        )

        assert resp.success, resp.message
        assert resp.data["detail"]["final_price"] == pytest.approx(220.0)
        assert resp.data["detail"]["other_fees"]["shipping_cost"]["cost"] == 20.0
        assert await stock_of(ids.red) == 8

    async def test_unrelated_change_keeps_manual_price(self, db, ids, create):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 2)], original_final_price=150.0)

        resp = await OrderService(db).update_order(order_id, {"order": {"note": "kirim sore"}})

        assert resp.success, resp.message
        assert resp.data["note"] == "kirim sore"
        assert resp.data["detail"]["final_price"] == 150.0

    async def test_orderer_change_reprices_with_new_tier(self, db, ids, create, stock_of):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 2)])

        resp = await OrderService(db).update_order(order_id, {"order": {"orderer_customer_id": ids.member}})

        assert resp.success, resp.message
        assert resp.data["orderer_customer"]["id"] == ids.member
        assert resp.data["detail"]["final_price"] == pytest.approx(180.0)
        assert resp.data["detail"]["products"][0]["product_price"] == 90.0
        assert await stock_of(ids.red) == 8


class TestUpdateDetails:
    async def test_payment_and_receipt(self, db, ids, create):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 1)])

        resp = await OrderService(db).update_order(
            order_id,
            {
                "order_detail": {
                    "detail": {"receipt_number": "JNT-1"},
                    "payment_method": {"id": ids.bca, "status": "Settlement", "date": "2024-05-01T10:00:00"},
                }
            },
        )

        assert resp.success, resp.message
        detail = resp.data["detail"]
        assert detail["payment_status"] == "SETTLEMENT"
        assert detail["payment_method_id"] == ids.bca
        assert detail["receipt_number"] == "JNT-1"
        assert detail["payment_date"].startswith("2024-05-01")

    async def test_installments_are_find_or_create_per_method(self, db, ids, create):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 1)])
        service = OrderService(db)

        for amount in (20.0, 30.0):
            resp = await service.update_order(
                order_id,
                {
                    "order_detail": {
                        "detail": {"other_fees": {"installments": {"payment_method_id": ids.gopay, "amount": amount}}}
                    }
                },
            )
            assert resp.success, resp.message

        assert len(resp.data["installments"]) == 1
        assert resp.data["installments"][0]["amount"] == 30.0
        assert resp.data["detail"]["final_price"] == pytest.approx(130.0)

    async def test_shipping_services_are_replaced(self, db, ids, create):
        order_id = await create(
            ids.retail,
            [line(ids.kaos, ids.red, 1)],
            shipping_services=[{"shipping_name": "JNE", "service_name": "REG"}],
        )

        resp = await OrderService(db).update_order(
            order_id,
            {"order_detail": {"shipping_services": [
                {"shipping_name": "SiCepat", "service_name": "BEST"},
                {"shipping_name": "SiCepat", "service_name": "HALU"},
            ]}},
        )

        assert resp.success, resp.message
        assert sorted(s["service_name"] for s in resp.data["shipping_services"]) == ["BEST", "HALU"]

    async def test_code_conflict(self, db, ids, create):
        await create(ids.retail, [line(ids.kaos, ids.red, 1)], code="A-1")
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 1)], code="A-2")

        resp = await OrderService(db).update_order(order_id, {"order_detail": {"detail": {"code": "A-1"}}})

        assert resp.status_code == 409


class TestUpdateRefusals:
    async def test_unknown_order(self, db, ids):
        resp = await OrderService(db).update_order("missing", {"order": {"note": "x"}})
        assert resp.status_code == 404

    async def test_cancelled_order_cannot_be_updated(self, db, ids, create, stock_of):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 2)])
        service = OrderService(db)
        await service.cancel_order(order_id)

        resp = await service.update_order(order_id, lines_update(line(ids.kaos, ids.red, 4)))

        assert resp.status_code == 409
        assert await stock_of(ids.red) == 10

    async def test_cancel_status_through_update_is_rejected(self, db, ids, create, stock_of):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 2)])

        resp = await OrderService(db).update_order(
            order_id, {"order_detail": {"payment_method": {"status": "CANCEL"}}}
        )

        assert resp.status_code == 400
        assert await stock_of(ids.red) == 8

    async def test_unknown_reference(self, db, ids, create):
        order_id = await create(ids.retail, [line(ids.kaos, ids.red, 1)])

        resp = await OrderService(db).update_order(order_id, {"order": {"sales_channel_id": "nope"}})

        assert resp.status_code == 404
