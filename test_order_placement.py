# test_order_placement.py
from decimal import Decimal

import pytest
from sqlalchemy import func
from sqlalchemy.exc import OperationalError

from kotflow.errors import ItemUnavailable, TransactionFailure
from kotflow.models.core import (
    KitchenTicket, MenuItem, Order, OrderLine, OrderStatus, OrderType, TicketLine, TicketStatus,
)
from kotflow.services import placement, tickets
from kotflow.services.placement import OrderDraft, place_order
from kotflow.services.pricing import LineRequest


def _counts(db):
    db.expire_all()
    return {
        "orders": db.query(func.count(Order.id)).scalar(),
        "order_lines": db.query(func.count(OrderLine.id)).scalar(),
        "tickets": db.query(func.count(KitchenTicket.id)).scalar(),
        "ticket_lines": db.query(func.count(TicketLine.id)).scalar(),
    }


def test_create_order_writes_order_ticket_and_lines(place, menu, db):
    out = place((menu["margherita"], 2, "no basil"), (menu["cola"], 1), table_id="T5", customer_name="Ana")

    assert out["order_number"].startswith("ORD-")
    assert out["ticket_number"].startswith("KOT-")
    assert out["total_amount"] == pytest.approx(29.84)  # (25.00 + 2.50) * 1.085

    o = db.get(Order, out["id"])
    assert o.status == OrderStatus.PENDING
    assert o.order_type == OrderType.DINE_IN
    assert o.created_by == "user-1"
    assert o.table_id == "T5"
    assert [l.quantity for l in o.lines] == [2, 1]

    t = db.get(KitchenTicket, out["ticket_id"])
    assert t.order_id == o.id
    assert t.status == TicketStatus.PENDING
    assert len(t.lines) == len(o.lines)
    by_line = {tl.order_line_id: tl for tl in t.lines}
    for line in o.lines:
        tl = by_line[line.id]
        assert tl.quantity == line.quantity
        assert tl.special_instructions == line.special_instructions
    assert [tl.item_name for tl in t.lines] == ["Margherita", "Cola"]


def test_unit_price_is_a_snapshot(place, menu, db):
    out = place((menu["burger"], 3))
    item = db.get(MenuItem, menu["burger"])
    item.price = Decimal("15.00")
    db.commit()

    db.expire_all()
    line = db.query(OrderLine).filter(OrderLine.order_id == out["id"]).one()
    assert line.unit_price == Decimal("9.99")
    assert line.total_price == Decimal("29.97")


def test_ticket_keeps_item_name_after_menu_rename(place, menu, db, client, auth_headers):
    out = place((menu["coffee"], 1))
    db.get(MenuItem, menu["coffee"]).name = "Ristretto"
    db.commit()

    r = client.get(f"/kot/{out['ticket_id']}", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["items"][0]["item_name"] == "Espresso"


def test_unavailable_item_aborts_whole_order(place, menu, db):
    r = place((menu["margherita"], 1), (menu["sold_out"], 1), expect=400)
    assert "unavailable" in r["detail"]
    assert _counts(db) == {"orders": 0, "order_lines": 0, "tickets": 0, "ticket_lines": 0}


def test_unknown_item_aborts_whole_order(place, menu, db):
    place((menu["margherita"], 1), ("no-such-item", 1), expect=400)
    assert _counts(db)["orders"] == 0


@pytest.mark.parametrize("body", [
    {"order_type": "Dine-in", "items": []},
    {"order_type": "Dine-in", "items": [{"menu_item_id": "x", "quantity": 0}]},
    {"order_type": "Drive-thru", "items": [{"menu_item_id": "x", "quantity": 1}]},
])
def test_malformed_input_rejected_before_any_write(client, auth_headers, db, body):
    r = client.post("/orders/", json=body, headers=auth_headers)
    assert r.status_code == 422
    assert _counts(db)["orders"] == 0


def test_create_order_requires_auth(client, menu):
    r = client.post("/orders/", json={"items": [{"menu_item_id": menu["cola"], "quantity": 1}]})
    assert r.status_code == 401


def test_fault_at_ticket_line_insert_rolls_everything_back(place, menu, db, monkeypatch):
    def boom(*a, **k):
        raise OperationalError("INSERT INTO ticket_line", {}, Exception("disk I/O error"))

    monkeypatch.setattr(tickets, "build_ticket_line", boom)
    r = place((menu["margherita"], 1), (menu["coffee"], 2), expect=500)
    assert r["detail"] == "Internal server error"
    assert _counts(db) == {"orders": 0, "order_lines": 0, "tickets": 0, "ticket_lines": 0}


def test_non_database_fault_also_rolls_back(menu, db, monkeypatch):
    def boom(*a, **k):
        raise RuntimeError("classifier exploded")

    monkeypatch.setattr(tickets, "classify_categories", boom)
    draft = OrderDraft(order_type=OrderType.TAKEAWAY, lines=[LineRequest(menu["cola"], 1)])
    with pytest.raises(RuntimeError):
        place_order(db, draft, created_by="u")
    assert _counts(db) == {"orders": 0, "order_lines": 0, "tickets": 0, "ticket_lines": 0}


def test_place_order_raises_item_unavailable(menu, db):
    draft = OrderDraft(order_type=OrderType.DELIVERY, lines=[LineRequest(menu["sold_out"], 1)])
    with pytest.raises(ItemUnavailable) as exc:
        place_order(db, draft)
    assert exc.value.menu_item_id == menu["sold_out"]


def test_order_number_collision_is_retried(menu, db, monkeypatch):
    db.add(Order(order_number="ORD-taken", order_type=OrderType.DINE_IN))
    db.commit()

    numbers = iter(["ORD-taken", "ORD-fresh"])
    monkeypatch.setattr(placement, "generate_number", lambda prefix: next(numbers))

    draft = OrderDraft(order_type=OrderType.DINE_IN, lines=[LineRequest(menu["burger"], 1)])
    result = place_order(db, draft)
    assert result.order_number == "ORD-fresh"
    assert _counts(db)["orders"] == 2
    assert _counts(db)["tickets"] == 1


def test_persistent_collision_fails_cleanly(menu, db, monkeypatch):
    db.add(Order(order_number="ORD-taken", order_type=OrderType.DINE_IN))
    db.commit()
    monkeypatch.setattr(placement, "generate_number", lambda prefix: "ORD-taken")

    draft = OrderDraft(order_type=OrderType.DINE_IN, lines=[LineRequest(menu["burger"], 1)])
    with pytest.raises(TransactionFailure):
        place_order(db, draft)
    assert _counts(db) == {"orders": 1, "order_lines": 0, "tickets": 0, "ticket_lines": 0}
    assert db.query(Order).one().order_number == "ORD-taken"


def test_get_and_list_orders(place, menu, client, auth_headers):
    a = place((menu["margherita"], 1), table_id="T1")
    place((menu["cola"], 2), table_id="T2", order_type="Takeaway")

    r = client.get(f"/orders/{a['id']}", headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["order_number"] == a["order_number"]
    assert body["items"][0]["item_name"] == "Margherita"
    assert body["items"][0]["preparation_time"] == 12
    assert body["kots"][0]["ticket_number"] == a["ticket_number"]

    r = client.get("/orders/", params={"table_id": "T2"}, headers=auth_headers)
    orders = r.json()["orders"]
    assert len(orders) == 1 and orders[0]["order_type"] == "Takeaway"

    r = client.get("/orders/", params={"status": "Bogus"}, headers=auth_headers)
    assert r.status_code == 400

    assert client.get("/orders/nope", headers=auth_headers).status_code == 404


def test_token_from_another_issuer_is_rejected(client, menu):
    import jwt
    token = jwt.encode({"sub": "user-1", "iss": "someone-else"}, "test-secret", algorithm="HS256")
    r = client.post("/orders/", json={"items": [{"menu_item_id": menu["cola"], "quantity": 1}]},
                    headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
