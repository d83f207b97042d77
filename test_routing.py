# test_routing.py
import pytest

from kotflow.errors import NoPrinterAvailable, NotFound
from kotflow.models.core import KitchenTicket, Order, PrinterFunction, TicketStatus
from kotflow.services.routing import select_printer, select_receipt_printer


@pytest.fixture
def manual_print(client, auth_headers):
    r = client.put("/settings/kot_auto_print", json={"value": "false"}, headers=auth_headers)
    assert r.status_code == 200


def test_mapped_printer_wins_over_kitchen_fallback(manual_print, place, menu, db, make_printer):
    make_printer("Kitchen", id="p-0")
    pizza = make_printer("Pizza Oven", id="p-9", category_id=menu["food"], subcategory_id=menu["pizza_sc"])

    out = place((menu["margherita"], 1))
    assert select_printer(db, out["ticket_id"]).id == pizza


def test_lowest_id_breaks_ties_between_mapped_printers(manual_print, place, menu, db, make_printer):
    make_printer("Bar B", PrinterFunction.BAR, id="p-2", category_id=menu["drinks"], subcategory_id=menu["cold_sc"])
    make_printer("Bar A", PrinterFunction.BAR, id="p-1", category_id=menu["drinks"], subcategory_id=menu["hot_sc"])

    out = place((menu["cola"], 1), (menu["coffee"], 1))
    assert select_printer(db, out["ticket_id"]).id == "p-1"


def test_offline_or_inactive_mapped_printer_falls_back_to_kitchen(manual_print, place, menu, db, make_printer):
    make_printer("Pizza Offline", id="p-1", online=False, category_id=menu["food"], subcategory_id=menu["pizza_sc"])
    make_printer("Pizza Retired", id="p-2", active=False, category_id=menu["food"], subcategory_id=menu["pizza_sc"])
    kitchen = make_printer("Kitchen", id="p-3")

    out = place((menu["margherita"], 1))
    assert select_printer(db, out["ticket_id"]).id == kitchen


def test_mapping_for_other_subcategory_is_ignored(manual_print, place, menu, db, make_printer):
    make_printer("Bar", PrinterFunction.BAR, category_id=menu["drinks"], subcategory_id=menu["cold_sc"])
    kitchen = make_printer("Kitchen")

    out = place((menu["burger"], 1))
    assert select_printer(db, out["ticket_id"]).id == kitchen


def test_no_mapping_and_no_kitchen_printer_online(place, menu, db, make_printer, client, auth_headers, agent):
    make_printer("Kitchen Offline", online=False)
    make_printer("Receipt", PrinterFunction.RECEIPT)

    # auto-print is on: the order must still be created
    out = place((menu["margherita"], 1))
    assert db.get(Order, out["id"]) is not None

    with pytest.raises(NoPrinterAvailable):
        select_printer(db, out["ticket_id"])

    r = client.post(f"/kot/{out['ticket_id']}/print", headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["printed"] is False
    assert body["error"] == "no_printer_available"
    assert agent.sent == []

    db.expire_all()
    assert db.get(KitchenTicket, out["ticket_id"]).status == TicketStatus.PENDING


def test_select_printer_unknown_ticket(db):
    with pytest.raises(NotFound):
        select_printer(db, "missing")


def test_receipt_printer_selection(db, make_printer):
    with pytest.raises(NoPrinterAvailable):
        select_receipt_printer(db)
    make_printer("Kitchen")
    rid = make_printer("Front desk", PrinterFunction.RECEIPT)
    assert select_receipt_printer(db).id == rid
