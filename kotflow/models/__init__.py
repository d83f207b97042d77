# Importing the module registers tables with Base for create_all()
from .core import (  # noqa: F401
    # Enums
    OrderType, OrderStatus, PaymentStatus, LineStatus, TicketStatus,
    TicketCategory, PrinterFunction, PaperSize, SettingType,

    # Menu
    Category, Subcategory, MenuItem,

    # Orders / KOT
    Order, OrderLine, KitchenTicket, TicketLine,

    # Printers
    Printer, PrinterCategoryMapping,

    # Settings
    SystemSetting,
)

__all__ = [
    # Enums
    "OrderType", "OrderStatus", "PaymentStatus", "LineStatus", "TicketStatus",
    "TicketCategory", "PrinterFunction", "PaperSize", "SettingType",

    # Menu
    "Category", "Subcategory", "MenuItem",

    # Orders / KOT
    "Order", "OrderLine", "KitchenTicket", "TicketLine",

    # Printers
    "Printer", "PrinterCategoryMapping",

    # Settings
    "SystemSetting",
]
