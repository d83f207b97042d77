from pydantic_settings import BaseSettings, SettingsConfigDict
class Settings(BaseSettings):
    APP_ENV: str = "dev"
    APP_SECRET: str
    DB_URL: str
    JWT_ISS: str = "kotflow"
    JWT_EXP_MIN: int = 12*60
    TZ: str = "UTC"
    LOG_LEVEL: str = "INFO"
    # print agent: renders ESC/POS and talks to the device on our behalf
    PRINT_AGENT_URL: str = "http://localhost:9100/agent"
    PRINT_TIMEOUT_SEC: float = 5.0
    DEFAULT_TAX_RATE: float = 8.5
    FOOD_CATEGORIES: list[str] = ["Food"]
    BEVERAGE_CATEGORIES: list[str] = ["Drinks", "Beverages"]
    STATUS_POLICY: str = "permissive"  # permissive | forward_only
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
settings = Settings()
