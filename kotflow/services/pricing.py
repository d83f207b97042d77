from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from sqlalchemy.orm import Session

from kotflow.errors import ItemUnavailable, ValidationError
from kotflow.models.core import MenuItem

CENT = Decimal("0.01")


def _money(x) -> Decimal:
    # use string to avoid float binary artifacts
    if x is None:
        x = 0
    return Decimal(str(x)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineRequest:
    menu_item_id: str
    quantity: int
    note: str | None = None


@dataclass(frozen=True)
class PricedLine:
    item: MenuItem
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    note: str | None = None


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal


def resolve_lines(db: Session, lines: Iterable[LineRequest]) -> list[PricedLine]:
    """Look up every requested item and price it.

    Any missing or unavailable item fails the whole order; there are no
    partial orders.
    """
    priced: list[PricedLine] = []
    for req in lines:
        if req.quantity is None or int(req.quantity) < 1:
            raise ValidationError(f"quantity must be >= 1 for item {req.menu_item_id}")
        item = db.get(MenuItem, req.menu_item_id)
        if not item or not item.is_available:
            raise ItemUnavailable(req.menu_item_id)
        unit = _money(item.price)
        priced.append(PricedLine(
            item=item,
            quantity=int(req.quantity),
            unit_price=unit,
            total_price=_money(unit * int(req.quantity)),
            note=req.note or None,
        ))
    if not priced:
        raise ValidationError("order must contain at least one item")
    return priced


def compute_totals(subtotal, tax_rate, discount=0) -> Totals:
    """Tax is subtotal * rate% rounded half-up to cents; total = subtotal + tax - discount."""
    subtotal = _money(subtotal)
    discount = _money(discount)
    if discount < 0:
        raise ValidationError("discount cannot be negative")
    tax = _money(subtotal * Decimal(str(tax_rate)) / Decimal(100))
    total = _money(subtotal + tax - discount)
    if total < 0:
        raise ValidationError("discount exceeds order value")
    return Totals(subtotal=subtotal, tax_amount=tax, discount_amount=discount, total_amount=total)


def price_order(priced: list[PricedLine], tax_rate, discount=0) -> Totals:
    return compute_totals(sum((p.total_price for p in priced), Decimal("0")), tax_rate, discount)
