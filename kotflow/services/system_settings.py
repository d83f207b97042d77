import json
from decimal import Decimal, InvalidOperation
from sqlalchemy.orm import Session

from kotflow.config import settings
from kotflow.models.core import SystemSetting, SettingType

TAX_RATE = "tax_rate"
KOT_AUTO_PRINT = "kot_auto_print"

DEFAULTS: dict[str, tuple[str, SettingType, str]] = {
    TAX_RATE: (str(settings.DEFAULT_TAX_RATE), SettingType.NUMBER, "Tax rate percentage"),
    KOT_AUTO_PRINT: ("true", SettingType.BOOLEAN, "Auto print KOT when order is placed"),
    "business_name": ("Restaurant POS", SettingType.STRING, "Business name for receipts"),
    "business_address": ("", SettingType.STRING, "Business address"),
    "business_phone": ("", SettingType.STRING, "Business phone number"),
    "receipt_footer": ("", SettingType.STRING, "Receipt footer message"),
}


def seed_defaults(db: Session) -> None:
    existing = {k for (k,) in db.query(SystemSetting.key).all()}
    for key, (value, vtype, desc) in DEFAULTS.items():
        if key not in existing:
            db.add(SystemSetting(key=key, value=value, value_type=vtype, description=desc))
    db.commit()


def coerce(row: SystemSetting):
    raw = row.value
    if raw is None:
        return None
    if row.value_type == SettingType.NUMBER:
        return Decimal(raw)
    if row.value_type == SettingType.BOOLEAN:
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if row.value_type == SettingType.JSON:
        return json.loads(raw)
    return raw


def get_value(db: Session, key: str, default=None):
    row = db.query(SystemSetting).filter(SystemSetting.key == key).first()
    if not row:
        return default
    return coerce(row)


def get_tax_rate(db: Session) -> Decimal:
    """Tax rate in percent; read on every call so edits apply to the next order."""
    row = db.query(SystemSetting).filter(SystemSetting.key == TAX_RATE).first()
    if not row or row.value in (None, ""):
        return Decimal(str(settings.DEFAULT_TAX_RATE))
    try:
        return Decimal(row.value)
    except InvalidOperation:
        return Decimal(str(settings.DEFAULT_TAX_RATE))


def get_auto_print(db: Session) -> bool:
    return bool(get_value(db, KOT_AUTO_PRINT, default=False))


def business_profile(db: Session) -> dict:
    keys = ("business_name", "business_address", "business_phone", "receipt_footer")
    rows = db.query(SystemSetting).filter(SystemSetting.key.in_(keys)).all()
    return {r.key: r.value for r in rows}


def put_value(db: Session, key: str, value: str, value_type: SettingType | None = None) -> SystemSetting:
    row = db.query(SystemSetting).filter(SystemSetting.key == key).first()
    if not row:
        row = SystemSetting(key=key, value=value, value_type=value_type or SettingType.STRING)
        db.add(row)
    else:
        row.value = value
        if value_type:
            row.value_type = value_type
    db.commit()
    db.refresh(row)
    return row
