from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from decimal import Decimal, InvalidOperation

from kotflow.db import get_db
from kotflow.deps import require_auth
from kotflow.models.core import SystemSetting, SettingType
from kotflow.schemas.common import SettingIn
from kotflow.services import system_settings

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/")
def list_settings(db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    rows = db.query(SystemSetting).order_by(SystemSetting.key).all()
    return {
        r.key: {"value": r.value, "type": r.value_type.value, "description": r.description}
        for r in rows
    }


@router.put("/{key}")
def put_setting(key: str, body: SettingIn, db: Session = Depends(get_db), sub: str = Depends(require_auth)):
    vtype = None
    if body.value_type:
        try:
            vtype = SettingType(body.value_type)
        except ValueError:
            raise HTTPException(400, detail="invalid value_type")
    if key == system_settings.TAX_RATE:
        try:
            rate = Decimal(body.value)
        except InvalidOperation:
            raise HTTPException(400, detail="tax_rate must be a number")
        if not rate.is_finite() or rate < 0:
            raise HTTPException(400, detail="tax_rate must be a non-negative number")
        vtype = SettingType.NUMBER
    elif key == system_settings.KOT_AUTO_PRINT:
        if body.value.strip().lower() not in ("true", "false"):
            raise HTTPException(400, detail="kot_auto_print must be true or false")
        vtype = SettingType.BOOLEAN
    row = system_settings.put_value(db, key, body.value, vtype)
    return {"key": row.key, "value": row.value, "type": row.value_type.value}
