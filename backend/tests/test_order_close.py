"""Tests for closing orders with a tip."""

import pytest
from decimal import Decimal

from app.models.order import Order, OrderStatus
from app.services.event_bus import EventType, event_bus
from app.services.order_service import (
    InvalidTip,
    OrderAlreadyClosed,
    OrderNotAssigned,
    OrderNotFound,
    OrderNotReady,
    OrderService,
    local_now,
)

API = "/api/v1/orders"


@pytest.fixture
def add_order(db_session):
    def _add(status=OrderStatus.COMPLETED.value, total="80.00", created_by=None) -> Order:
        order = Order(
            customer_name="Table 4",
            table_number=4,
            status=status,
            total_amount=Decimal(total),
            created_by=created_by,
        )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order
    return _add


class TestCloseOrderService:

    def test_close_records_tip_and_percentage(self, db_session, add_order, server_a):
        order = add_order(created_by=server_a.id)
        received = []
        event_bus.subscribe(EventType.ORDER_CLOSED, received.append)

        closed = OrderService(db_session).close_order(order.id, "12.00", closed_by=server_a.id, payment_method="card")

        assert closed["status"] == "closed"
        assert closed["tip_amount"] == Decimal("12.00")
        assert closed["tip_percentage"] == Decimal("15.00")
        assert closed["server_id"] == server_a.id
        assert closed["closed_by"] == server_a.id
        assert closed["closed_at"] is not None
        assert received[0].data["order_id"] == order.id

    def test_explicit_percentage_kept(self, db_session, add_order, manager):
        order = add_order()
        closed = OrderService(db_session).close_order(
            order.id, 10, closed_by=manager.id, tip_percentage=20, is_manager=True
        )
        assert closed["tip_percentage"] == Decimal("20.00")

    def test_zero_tip_has_no_percentage(self, db_session, add_order, server_a):
        order = add_order(status=OrderStatus.READY.value, created_by=server_a.id)
        closed = OrderService(db_session).close_order(order.id, 0, closed_by=server_a.id)
        assert closed["tip_amount"] == Decimal("0.00")
        assert closed["tip_percentage"] is None

    def test_negative_tip(self, db_session, add_order, server_a):
        order = add_order(created_by=server_a.id)
        with pytest.raises(InvalidTip):
            OrderService(db_session).close_order(order.id, "-1", closed_by=server_a.id)

    def test_missing_order(self, db_session, server_a):
        with pytest.raises(OrderNotFound):
            OrderService(db_session).close_order(999, 5, closed_by=server_a.id)

    def test_already_closed(self, db_session, add_order, server_a):
        order = add_order(created_by=server_a.id)
        service = OrderService(db_session)
        service.close_order(order.id, 5, closed_by=server_a.id)
        with pytest.raises(OrderAlreadyClosed):
            service.close_order(order.id, 5, closed_by=server_a.id)

    def test_not_ready(self, db_session, add_order, server_a):
        order = add_order(status=OrderStatus.PREPARING.value, created_by=server_a.id)
        with pytest.raises(OrderNotReady):
            OrderService(db_session).close_order(order.id, 5, closed_by=server_a.id)

    def test_server_must_be_assigned(self, db_session, add_order, server_a, server_b):
        order = add_order(created_by=server_b.id)
        with pytest.raises(OrderNotAssigned):
            OrderService(db_session).close_order(order.id, 5, closed_by=server_a.id)

    def test_explicit_server_assignment(self, db_session, add_order, server_a, server_b):
        order = add_order(created_by=server_b.id)
        closed = OrderService(db_session).close_order(order.id, 5, closed_by=server_a.id, server_id=server_a.id)
        assert closed["server_id"] == server_a.id


class TestCloseOrderRoute:

    def test_server_closes_own_order(self, client, add_order, server_a, server_headers):
        order = add_order(created_by=server_a.id)
        res = client.post(f"{API}/{order.id}/close", headers=server_headers, json={"tip_amount": 8})
        assert res.status_code == 200
        assert res.json()["message"] == "Order closed successfully"
        assert float(res.json()["order"]["tip_amount"]) == 8.0

    def test_chef_forbidden(self, client, add_order, chef, auth_headers_for):
        order = add_order()
        res = client.post(f"{API}/{order.id}/close", headers=auth_headers_for(chef), json={"tip_amount": 8})
        assert res.status_code == 403

    def test_unassigned_server_forbidden(self, client, add_order, server_b, server_headers):
        order = add_order(created_by=server_b.id)
        res = client.post(f"{API}/{order.id}/close", headers=server_headers, json={"tip_amount": 8})
        assert res.status_code == 403

    def test_manager_closes_any_order(self, client, add_order, server_b, manager_headers):
        order = add_order(created_by=server_b.id)
        res = client.post(f"{API}/{order.id}/close", headers=manager_headers, json={"tip_amount": 8})
        assert res.status_code == 200

    def test_error_statuses(self, client, add_order, manager_headers):
        assert client.post(f"{API}/999/close", headers=manager_headers, json={"tip_amount": 1}).status_code == 404

        pending = add_order(status=OrderStatus.PENDING.value)
        assert client.post(f"{API}/{pending.id}/close", headers=manager_headers,
                           json={"tip_amount": 1}).status_code == 400

        order = add_order()
        assert client.post(f"{API}/{order.id}/close", headers=manager_headers,
                           json={"tip_amount": -3}).status_code == 400
        assert client.post(f"{API}/{order.id}/close", headers=manager_headers,
                           json={"tip_amount": 3}).status_code == 200
        assert client.post(f"{API}/{order.id}/close", headers=manager_headers,
                           json={"tip_amount": 3}).status_code == 400

    def test_closed_tip_feeds_pool(self, client, add_order, add_shift, add_rule, server_a, manager_headers):
        order = add_order(created_by=server_a.id)
        client.post(f"{API}/{order.id}/close", headers=manager_headers, json={"tip_amount": 25})
        today = local_now().date()
        add_shift(server_a, 5, on=today)
        rule = add_rule()

        res = client.post("/api/v1/tips/tip-pools/calculate", headers=manager_headers, json={
            "shift_date": today.isoformat(), "distribution_rule_id": rule.id,
        })
        assert res.status_code == 200
        assert float(res.json()["pool"]["total_tips"]) == 25.0
