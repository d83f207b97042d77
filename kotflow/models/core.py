from sqlalchemy import (
    String, ForeignKey, Boolean, Numeric, Enum, Text, DateTime, Integer
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from enum import Enum as PyEnum
from datetime import datetime
from decimal import Decimal
from kotflow.db import Base
from kotflow.models.common import IdMixin, TSMMixin


def _enum(cls):
    # persist the display values ("Dine-in", "Pending") rather than member names
    return Enum(cls, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20)


# ── Enums ───────────────────────────────────────────────────────────────────
class OrderType(PyEnum):
    DINE_IN = "Dine-in"
    TAKEAWAY = "Takeaway"
    DELIVERY = "Delivery"

class OrderStatus(PyEnum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PREPARING = "Preparing"
    READY = "Ready"
    SERVED = "Served"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

class PaymentStatus(PyEnum):
    UNPAID = "Unpaid"
    PAID = "Paid"
    PARTIAL = "Partial"
    REFUNDED = "Refunded"

class LineStatus(PyEnum):
    PENDING = "Pending"
    PREPARING = "Preparing"
    READY = "Ready"
    SERVED = "Served"

class TicketStatus(PyEnum):
    PENDING = "Pending"
    PRINTED = "Printed"
    PREPARING = "Preparing"
    READY = "Ready"
    SERVED = "Served"

class TicketCategory(PyEnum):
    FOOD = "Food"
    BEVERAGES = "Beverages"
    MIXED = "Mixed"

class PrinterFunction(PyEnum):
    KITCHEN = "Kitchen"
    BAR = "Bar"
    RECEIPT = "Receipt"
    GENERAL = "General"

class PaperSize(PyEnum):
    MM58 = "58mm"
    MM80 = "80mm"

class SettingType(PyEnum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    JSON = "json"

# ── Menu (read-only reference data) ─────────────────────────────────────────
class Category(Base, IdMixin, TSMMixin):
    __tablename__ = "category"
    name: Mapped[str] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class Subcategory(Base, IdMixin, TSMMixin):
    __tablename__ = "subcategory"
    category_id: Mapped[str] = mapped_column(String(36), ForeignKey("category.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class MenuItem(Base, IdMixin, TSMMixin):
    __tablename__ = "menu_item"
    subcategory_id: Mapped[str] = mapped_column(String(36), ForeignKey("subcategory.id", ondelete="CASCADE"))
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    preparation_time: Mapped[int | None] = mapped_column(Integer, default=15)  # minutes

# ── Orders ──────────────────────────────────────────────────────────────────
class Order(Base, IdMixin, TSMMixin):
    __tablename__ = "order"
    order_number: Mapped[str] = mapped_column(String(50), unique=True)
    table_id: Mapped[str | None] = mapped_column(String(36))
    session_id: Mapped[str | None] = mapped_column(String(36))
    customer_id: Mapped[str | None] = mapped_column(String(36))
    customer_name: Mapped[str | None] = mapped_column(String(100))
    order_type: Mapped[OrderType] = mapped_column(_enum(OrderType), default=OrderType.DINE_IN)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    status: Mapped[OrderStatus] = mapped_column(_enum(OrderStatus), default=OrderStatus.PENDING)
    payment_status: Mapped[PaymentStatus] = mapped_column(_enum(PaymentStatus), default=PaymentStatus.UNPAID)
    special_instructions: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))

    lines: Mapped[list["OrderLine"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", passive_deletes=True, order_by="OrderLine.position"
    )
    tickets: Mapped[list["KitchenTicket"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", passive_deletes=True
    )

class OrderLine(Base, IdMixin, TSMMixin):
    __tablename__ = "order_line"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id", ondelete="CASCADE"))
    menu_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("menu_item.id"))
    position: Mapped[int] = mapped_column(Integer, default=0)
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))  # snapshot at order time
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    status: Mapped[LineStatus] = mapped_column(_enum(LineStatus), default=LineStatus.PENDING)
    special_instructions: Mapped[str | None] = mapped_column(Text)

    order: Mapped[Order] = relationship(back_populates="lines")

class KitchenTicket(Base, IdMixin, TSMMixin):
    __tablename__ = "kitchen_ticket"
    ticket_number: Mapped[str] = mapped_column(String(50), unique=True)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id", ondelete="CASCADE"))
    printer_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("printer.id", ondelete="SET NULL"))
    category: Mapped[TicketCategory] = mapped_column(_enum(TicketCategory), default=TicketCategory.FOOD)
    status: Mapped[TicketStatus] = mapped_column(_enum(TicketStatus), default=TicketStatus.PENDING)
    printed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reprint_count: Mapped[int] = mapped_column(Integer, default=0)

    order: Mapped[Order] = relationship(back_populates="tickets")
    lines: Mapped[list["TicketLine"]] = relationship(
        back_populates="ticket", cascade="all, delete-orphan", passive_deletes=True, order_by="TicketLine.position"
    )

class TicketLine(Base, IdMixin, TSMMixin):
    __tablename__ = "ticket_line"
    ticket_id: Mapped[str] = mapped_column(String(36), ForeignKey("kitchen_ticket.id", ondelete="CASCADE"))
    order_line_id: Mapped[str] = mapped_column(String(36), ForeignKey("order_line.id", ondelete="CASCADE"))
    position: Mapped[int] = mapped_column(Integer, default=0)
    item_name: Mapped[str] = mapped_column(String(100))  # denormalized, survives menu renames
    quantity: Mapped[int] = mapped_column(Integer)
    special_instructions: Mapped[str | None] = mapped_column(Text)
    status: Mapped[LineStatus] = mapped_column(_enum(LineStatus), default=LineStatus.PENDING)

    ticket: Mapped[KitchenTicket] = relationship(back_populates="lines")

# ── Printers ────────────────────────────────────────────────────────────────
class Printer(Base, IdMixin, TSMMixin):
    __tablename__ = "printer"
    name: Mapped[str] = mapped_column(String(100))
    function: Mapped[PrinterFunction] = mapped_column(_enum(PrinterFunction), default=PrinterFunction.KITCHEN)
    ip_address: Mapped[str] = mapped_column(String(45))
    port: Mapped[int] = mapped_column(Integer, default=9100)
    paper_size: Mapped[PaperSize] = mapped_column(_enum(PaperSize), default=PaperSize.MM80)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False)
    last_test_print: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

class PrinterCategoryMapping(Base, IdMixin, TSMMixin):
    __tablename__ = "printer_category_mapping"
    printer_id: Mapped[str] = mapped_column(String(36), ForeignKey("printer.id", ondelete="CASCADE"))
    category_id: Mapped[str] = mapped_column(String(36), ForeignKey("category.id", ondelete="CASCADE"))
    subcategory_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("subcategory.id", ondelete="CASCADE"))

# ── Settings ────────────────────────────────────────────────────────────────
class SystemSetting(Base, IdMixin, TSMMixin):
    __tablename__ = "system_setting"
    key: Mapped[str] = mapped_column(String(100), unique=True)
    value: Mapped[str | None] = mapped_column(Text)
    value_type: Mapped[SettingType] = mapped_column(_enum(SettingType), default=SettingType.STRING)
    description: Mapped[str | None] = mapped_column(Text)
