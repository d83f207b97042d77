from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from kotflow.db import get_db
from kotflow.deps import require_auth, http_error
from kotflow.errors import PosError
from kotflow.models.core import Printer, PrinterCategoryMapping, Category, Subcategory
from kotflow.schemas.orders import PrintOut
from kotflow.services.printing import PrintDispatcher

router = APIRouter(prefix="/printers", tags=["printers"])


def _printer_row(p: Printer) -> dict:
    return {
        "id": p.id, "name": p.name, "function": p.function.value,
        "ip_address": p.ip_address, "port": p.port, "paper_size": p.paper_size.value,
        "is_active": p.is_active, "is_online": p.is_online, "last_test_print": p.last_test_print,
    }


@router.get("/")
def list_printers(db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    printers = db.query(Printer).order_by(Printer.name).all()
    mapped = (
        db.query(PrinterCategoryMapping.printer_id, Category.name)
        .join(Category, Category.id == PrinterCategoryMapping.category_id)
        .distinct()
        .all()
    )
    by_printer: dict[str, list[str]] = {}
    for pid, cname in mapped:
        by_printer.setdefault(pid, []).append(cname)
    return {"printers": [{**_printer_row(p), "mapped_categories": sorted(by_printer.get(p.id, []))} for p in printers]}


@router.get("/{printer_id}")
def get_printer(printer_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    p = db.get(Printer, printer_id)
    if not p:
        raise HTTPException(404, detail="Printer not found")
    rows = (
        db.query(PrinterCategoryMapping, Category.name, Subcategory.name)
        .join(Category, Category.id == PrinterCategoryMapping.category_id)
        .outerjoin(Subcategory, Subcategory.id == PrinterCategoryMapping.subcategory_id)
        .filter(PrinterCategoryMapping.printer_id == p.id)
        .all()
    )
    out = _printer_row(p)
    out["category_mappings"] = [
        {"id": m.id, "category_id": m.category_id, "subcategory_id": m.subcategory_id,
         "category_name": cname, "subcategory_name": sname}
        for m, cname, sname in rows
    ]
    return out


@router.post("/{printer_id}/test", response_model=PrintOut)
def test_printer(printer_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    try:
        outcome = PrintDispatcher(db).test_printer(printer_id)
    except PosError as e:
        raise http_error(e)
    return outcome.as_dict()


@router.get("/{printer_id}/status")
def printer_status(printer_id: str, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    try:
        online = PrintDispatcher(db).check_printer(printer_id)
    except PosError as e:
        raise http_error(e)
    return {"id": printer_id, "is_online": online, "status": "Online" if online else "Offline"}
