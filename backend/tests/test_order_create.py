"""
创建订单
"""
import re

import pytest

from backoffice.models import Customer, CustomerCategory, Product, ProductPrice, ProductVariant
from backoffice.services.order_service import OrderService

pytestmark = pytest.mark.anyio


def line(product_id, variant_id=None, qty=1):
    item = {"product_id": product_id, "product_qty": qty}
    if variant_id:
        item["product_variant_id"] = variant_id
    return item


class TestCreateOrder:
    async def test_prices_fees_and_reserves_stock(self, db, ids, make_payload, stock_of):
        payload = make_payload(
            ids.retail,
            [line(ids.kaos, ids.red, 2), line(ids.topi, ids.cap, 2)],
            other_fees={"shipping_cost": {"cost": 10.0}, "discount": {"type": "percent", "value": 10.0}},
        )

        resp = await OrderService(db).create_order(payload)

        assert resp.success, resp.message
        assert resp.status_code == 201
        detail = resp.data["detail"]
        assert detail["final_price"] == pytest.approx(297.0)
        assert detail["original_final_price"] == pytest.approx(297.0)
        assert detail["payment_status"] == "PENDING"
        assert re.match(r"^OID-\d{4}-\d{4}$", detail["code"])
        assert sorted(p["product_price"] for p in detail["products"]) == [60.0, 100.0]

        # 收货客户默认为下单客户
        assert resp.data["delivery_target_customer"]["id"] == ids.retail
        assert await stock_of(ids.red) == 8
        assert await stock_of(ids.cap) is None

    async def test_member_tier_and_product_discount(self, db, ids, make_payload):
        payload = make_payload(
            ids.member,
            [line(ids.kaos, ids.blue, 2)],
            other_fees={
                "product_discounts": [
                    {"product_variant_id": ids.blue, "discount_type": "percent", "discount_amount": 10.0}
                ]
            },
        )

        resp = await OrderService(db).create_order(payload)

        assert resp.success, resp.message
        # 80*2 - 80*2*10%
        assert resp.data["detail"]["final_price"] == pytest.approx(144.0)

    async def test_line_without_variant_uses_default_price_and_keeps_stock(self, db, ids, make_payload, stock_of):
        resp = await OrderService(db).create_order(make_payload(ids.member, [line(ids.kaos, qty=3)]))

        assert resp.success, resp.message
        assert resp.data["detail"]["final_price"] == pytest.approx(270.0)
        assert await stock_of(ids.red) == 10
        assert await stock_of(ids.blue) == 5

    async def test_variant_without_price_is_free(self, db, ids, make_payload, stock_of):
        resp = await OrderService(db).create_order(make_payload(ids.retail, [line(ids.kosong, ids.bare, 1)]))

        assert resp.success, resp.message
        assert resp.data["detail"]["final_price"] == 0.0
        assert await stock_of(ids.bare) == 2

    async def test_final_price_override(self, db, ids, make_payload):
        payload = make_payload(ids.retail, [line(ids.kaos, ids.red, 1)], original_final_price=75.0)

        resp = await OrderService(db).create_order(payload)

        assert resp.data["detail"]["final_price"] == 75.0
        assert resp.data["detail"]["original_final_price"] == 100.0

    async def test_installments_add_to_total_and_create_record(self, db, ids, make_payload):
        payload = make_payload(
            ids.retail,
            [line(ids.kaos, ids.red, 1)],
            other_fees={"installments": {"payment_method_id": ids.gopay, "amount": 50.0}},
            payment_method={"id": ids.bca, "status": "installments"},
        )

        resp = await OrderService(db).create_order(payload)

        assert resp.success, resp.message
        assert resp.data["detail"]["final_price"] == pytest.approx(150.0)
        assert resp.data["detail"]["payment_status"] == "INSTALLMENTS"
        assert len(resp.data["installments"]) == 1
        assert resp.data["installments"][0]["payment_method_id"] == ids.gopay

    async def test_references_and_shipping_services(self, db, ids, make_payload):
        payload = make_payload(
            ids.retail,
            [line(ids.kaos, ids.red, 1)],
            code="INV-0001",
            receipt_number="JNE123",
            payment_method={"id": ids.bca, "status": "settlement"},
            shipping_services=[{"shipping_name": "JNE", "service_name": "REG", "shipping_cost": 9.0}],
        )
        payload["order"].update(
            delivery_target_customer_id=ids.member,
            delivery_place_id=ids.place,
            sales_channel_id=ids.channel,
            note="titip",
        )

        resp = await OrderService(db).create_order(payload)

        assert resp.success, resp.message
        assert resp.data["detail"]["code"] == "INV-0001"
        assert resp.data["detail"]["payment_status"] == "SETTLEMENT"
        assert resp.data["detail"]["payment_method"]["name"] == "BCA"
        assert resp.data["delivery_target_customer"]["id"] == ids.member
        assert resp.data["sales_channel"]["name"] == "Shopee"
        assert resp.data["shipping_services"][0]["service_name"] == "REG"

    async def test_zero_installment_amount_creates_no_record(self, db, ids, make_payload):
        payload = make_payload(
            ids.retail,
            [line(ids.kaos, ids.red, 1)],
            other_fees={"installments": {"payment_method_id": ids.gopay, "amount": 0.0}},
        )

        resp = await OrderService(db).create_order(payload)

        assert resp.success, resp.message
        assert resp.data["installments"] == []
        assert resp.data["detail"]["final_price"] == pytest.approx(100.0)

    async def test_product_discount_uses_first_line_quantity(self, db, ids, make_payload, stock_of):
        payload = make_payload(
            ids.member,
            [line(ids.kaos, ids.blue, 2), line(ids.kaos, ids.blue, 1)],
            other_fees={
                "product_discounts": [
                    {"product_variant_id": ids.blue, "discount_type": "percent", "discount_amount": 10.0}
                ]
            },
        )

        resp = await OrderService(db).create_order(payload)

        assert resp.success, resp.message
        # 80*3 - 80*2*10%
        assert resp.data["detail"]["final_price"] == pytest.approx(224.0)
        assert await stock_of(ids.blue) == 2


class TestResellerOrder:
    @pytest.fixture
    async def reseller_stock(self, session_maker):
        """库存 20、分销价 80 的规格，以及一位分销客户"""
        async with session_maker() as session:
            variant = ProductVariant(sku="JKT-1", stock=20, prices=[ProductPrice(normal=100, reseller=80)])
            product = Product(name="Jaket", variants=[variant])
            customer = Customer(name="Rina", category=CustomerCategory.RESELLER)
            session.add_all([product, customer])
            await session.commit()
            return product.id, variant.id, customer.id

    async def test_tier_packaging_and_percent_discount(self, db, reseller_stock, stock_of):
        product_id, variant_id, customer_id = reseller_stock
        payload = {
            "order": {"orderer_customer_id": customer_id},
            "order_detail": {
                "detail": {"other_fees": {"packaging": 10, "discount": {"type": "percent", "value": 10}}},
                "order_products": [{"product_id": product_id, "product_variant_id": variant_id, "product_qty": 4}],
            },
        }

        resp = await OrderService(db).create_order(payload)

        assert resp.success, resp.message
        # 80*4 = 320, +10 = 330, -33 = 297
        assert resp.data["detail"]["final_price"] == pytest.approx(297.0)
        assert resp.data["detail"]["products"][0]["product_price"] == 80.0
        assert await stock_of(variant_id) == 16


class TestCreateOrderFailures:
    async def test_insufficient_stock(self, db, ids, make_payload, stock_of, order_count):
        resp = await OrderService(db).create_order(make_payload(ids.retail, [line(ids.kaos, ids.red, 11)]))

        assert not resp.success
        assert resp.status_code == 422
        assert resp.data == {"variant_id": ids.red, "available": 10, "requested": 11}
        assert await stock_of(ids.red) == 10
        assert await order_count() == 0

    async def test_partial_failure_rolls_back_earlier_reservations(self, db, ids, make_payload, stock_of, order_count):
        payload = make_payload(ids.retail, [line(ids.kaos, ids.red, 2), line(ids.kaos, ids.blue, 6)])

        resp = await OrderService(db).create_order(payload)

        assert resp.status_code == 422
        assert await stock_of(ids.red) == 10
        assert await stock_of(ids.blue) == 5
        assert await order_count() == 0

    async def test_duplicate_code(self, db, ids, make_payload, stock_of):
        service = OrderService(db)
        first = await service.create_order(make_payload(ids.retail, [line(ids.kaos, ids.red, 1)], code="DUP-1"))
        second = await service.create_order(make_payload(ids.retail, [line(ids.kaos, ids.red, 1)], code="DUP-1"))

        assert first.success
        assert second.status_code == 409
        assert await stock_of(ids.red) == 9

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda p, ids: p["order"].update(orderer_customer_id="nobody"),
            lambda p, ids: p["order"].update(delivery_place_id="nowhere"),
            lambda p, ids: p["order"].update(sales_channel_id="no-channel"),
            lambda p, ids: p["order_detail"]["payment_method"].update(id="no-method"),
            lambda p, ids: p["order_detail"]["order_products"].append({"product_id": "ghost", "product_qty": 1}),
            # 规格不属于该商品
            lambda p, ids: p["order_detail"]["order_products"][0].update(product_variant_id=ids.cap),
        ],
    )
    async def test_missing_references(self, db, ids, make_payload, stock_of, mutate):
        payload = make_payload(ids.retail, [line(ids.kaos, ids.red, 1)])
        mutate(payload, ids)

        resp = await OrderService(db).create_order(payload)

        assert resp.status_code == 404
        assert await stock_of(ids.red) == 10

    async def test_unknown_installment_method(self, db, ids, make_payload):
        payload = make_payload(
            ids.retail,
            [line(ids.kaos, ids.red, 1)],
            other_fees={"installments": {"payment_method_id": "nope", "amount": 5.0}},
        )

        resp = await OrderService(db).create_order(payload)

        assert resp.status_code == 404

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda p: p["order_detail"]["order_products"][0].update(product_qty=0),
            lambda p: p["order_detail"]["order_products"][0].update(product_qty=10**19),
            lambda p: p["order_detail"].update(order_products=[]),
            lambda p: p["order_detail"]["detail"].update(other_fees={"tip": 5.0}),
            lambda p: p["order_detail"]["detail"].update(other_fees={"discount": {"type": "percent", "value": "10"}}),
            lambda p: p["order"].pop("orderer_customer_id"),
            lambda p: p["order_detail"]["payment_method"].update(status="refunded"),
        ],
    )
    async def test_invalid_payload(self, db, ids, make_payload, mutate):
        payload = make_payload(ids.retail, [line(ids.kaos, ids.red, 1)])
        mutate(payload)

        resp = await OrderService(db).create_order(payload)

        assert resp.status_code == 400
        assert resp.data["errors"]

    async def test_cancelled_status_is_rejected(self, db, ids, make_payload, order_count):
        payload = make_payload(ids.retail, [line(ids.kaos, ids.red, 1)], payment_method={"status": "CANCEL"})

        resp = await OrderService(db).create_order(payload)

        assert resp.status_code == 400
        assert await order_count() == 0

    async def test_unexpected_error_becomes_failure_response(self, db, ids, make_payload, stock_of, monkeypatch):
        async def boom(self, payload):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(OrderService, "_create", boom)

        resp = await OrderService(db).create_order(make_payload(ids.retail, [line(ids.kaos, ids.red, 1)]))

        assert not resp.success
        assert resp.status_code == 500
        assert await stock_of(ids.red) == 10
