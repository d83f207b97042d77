from pydantic import BaseModel
from typing import Optional

class SettingIn(BaseModel):
    value: str
    value_type: Optional[str] = None
