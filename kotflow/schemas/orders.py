from pydantic import BaseModel, Field
from typing import Optional, Literal

OrderTypeLiteral = Literal["Dine-in", "Takeaway", "Delivery"]

class OrderLineIn(BaseModel):
    menu_item_id: str
    quantity: int = Field(ge=1)
    special_instructions: Optional[str] = None

class OrderIn(BaseModel):
    order_type: OrderTypeLiteral = "Dine-in"
    table_id: Optional[str] = None
    session_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    special_instructions: Optional[str] = None
    items: list[OrderLineIn] = Field(min_length=1)

class OrderCreatedOut(BaseModel):
    id: str
    order_number: str
    ticket_id: str
    ticket_number: str
    total_amount: float
    auto_print: bool

class StatusIn(BaseModel):
    # checked against the enumerated set in the service so bad values get a 400
    status: str

class PrintOut(BaseModel):
    printed: bool
    printer_id: Optional[str] = None
    message: str = ""
    error: Optional[str] = None
