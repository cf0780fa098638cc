import os
from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class Settings(BaseSettings):
    """Service configuration with environment variable support"""
    APP_NAME: str = "SPMS Property Management"
    APP_VERSION: str = "1.0.0"

    MONGO_URI: str = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    MONGO_DATABASE: str = os.getenv("MONGO_DATABASE", "spms")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # IoT energy simulation
    ENERGY_SIMULATOR_ENABLED: bool = True
    ENERGY_TICK_SECONDS: float = 3.0
    ENERGY_STARTUP_SPIKE: bool = True
    ENERGY_SPIKE_CHANNEL: str = "energy-spike"
    ENERGY_READING_TTL_SECONDS: int = 300  # 0 keeps readings forever
    ENERGY_LIVE_LIMIT: int = 100

    # Payments / ledger
    PAYMENT_DELAY_SECONDS: float = 1.0
    LEDGER_MAX_RETRIES: int = 5

    PROPERTIES_PAGE_SIZE: int = 6
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


settings = Settings()


def get_settings() -> Settings:
    """Dependency to get service settings"""
    return settings
