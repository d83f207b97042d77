# conftest.py
import os
import tempfile
from decimal import Decimal

# settings are read at import time, so the environment goes first
_TMP = tempfile.mkdtemp(prefix="kotflow-test-")
os.environ["APP_SECRET"] = "test-secret"
os.environ["DB_URL"] = f"sqlite:///{_TMP}/kotflow.db"
os.environ["PRINT_AGENT_URL"] = "http://print-agent.test"
os.environ["STATUS_POLICY"] = "permissive"

import pytest
from fastapi.testclient import TestClient

from kotflow import models  # noqa: F401
from kotflow.db import Base, engine, SessionLocal
from kotflow.errors import PrintDispatchFailure
from kotflow.main import app
from kotflow.models.core import (
    Category, Subcategory, MenuItem, Printer, PrinterCategoryMapping, PrinterFunction,
)
from kotflow.services import printing
from kotflow.services.system_settings import seed_defaults
from kotflow.util.security import create_token


class FakeAgent:
    """Stands in for the print agent; records every document it is handed."""

    def __init__(self):
        self.sent: list[tuple[str, dict]] = []
        self.probes: list[str] = []
        self.fail = False

    def send(self, printer, document):
        self.sent.append((printer.id, document))
        if self.fail:
            raise PrintDispatchFailure("printer not connected", printer.id)

    def probe(self, printer):
        self.probes.append(printer.id)
        return not self.fail


@pytest.fixture(autouse=True)
def fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    s = SessionLocal()
    try:
        seed_defaults(s)
    finally:
        s.close()
    yield


@pytest.fixture(autouse=True)
def agent(monkeypatch):
    fake = FakeAgent()
    monkeypatch.setattr(printing, "get_print_client", lambda: fake)
    return fake


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {create_token('user-1')}"}


@pytest.fixture
def menu(db):
    """Food: Pizza/Burgers, Drinks: Hot Drinks/Cold Drinks."""
    food = Category(name="Food")
    drinks = Category(name="Drinks")
    db.add_all([food, drinks])
    db.flush()
    pizza_sc = Subcategory(category_id=food.id, name="Pizza")
    burgers_sc = Subcategory(category_id=food.id, name="Burgers")
    hot_sc = Subcategory(category_id=drinks.id, name="Hot Drinks")
    cold_sc = Subcategory(category_id=drinks.id, name="Cold Drinks")
    db.add_all([pizza_sc, burgers_sc, hot_sc, cold_sc])
    db.flush()
    items = {
        "margherita": MenuItem(subcategory_id=pizza_sc.id, name="Margherita", price=Decimal("12.50"), preparation_time=12),
        "burger": MenuItem(subcategory_id=burgers_sc.id, name="Cheeseburger", price=Decimal("9.99")),
        "platter": MenuItem(subcategory_id=pizza_sc.id, name="Party Platter", price=Decimal("100.00")),
        "coffee": MenuItem(subcategory_id=hot_sc.id, name="Espresso", price=Decimal("3.00"), preparation_time=3),
        "cola": MenuItem(subcategory_id=cold_sc.id, name="Cola", price=Decimal("2.50")),
        "sold_out": MenuItem(subcategory_id=pizza_sc.id, name="Truffle Pizza", price=Decimal("30.00"), is_available=False),
    }
    db.add_all(items.values())
    db.commit()
    out = {k: v.id for k, v in items.items()}
    out.update(
        food=food.id, drinks=drinks.id,
        pizza_sc=pizza_sc.id, burgers_sc=burgers_sc.id, hot_sc=hot_sc.id, cold_sc=cold_sc.id,
    )
    return out


@pytest.fixture
def make_printer(db):
    def _make(name, function=PrinterFunction.KITCHEN, *, online=True, active=True, id=None,
              category_id=None, subcategory_id=None):
        p = Printer(name=name, function=function, ip_address="10.0.0.50", port=9100,
                    is_online=online, is_active=active)
        if id:
            p.id = id
        db.add(p)
        db.flush()
        if category_id:
            db.add(PrinterCategoryMapping(printer_id=p.id, category_id=category_id, subcategory_id=subcategory_id))
        db.commit()
        return p.id
    return _make


@pytest.fixture
def place(client, auth_headers):
    """POST an order and return the response JSON; items are (menu_item_id, qty[, note])."""
    def _place(*items, order_type="Dine-in", expect=201, **extra):
        body = {
            "order_type": order_type,
            "items": [
                {"menu_item_id": i[0], "quantity": i[1], **({"special_instructions": i[2]} if len(i) > 2 else {})}
                for i in items
            ],
            **extra,
        }
        r = client.post("/orders/", json=body, headers=auth_headers)
        assert r.status_code == expect, f"POST /orders/ -> {r.status_code}: {r.text}"
        return r.json()
    return _place
