"""Configuration settings for the satchannel propagation engine."""
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    PROJECT_NAME: str = "satchannel"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_DIR: Optional[str] = None

    # Time series
    DEFAULT_STEP_SECONDS: float = 10.0
    MAX_TIMESERIES_FRAMES: int = 20000

    # Calibration solver
    CALIBRATION_MAX_ITERATIONS: int = 30
    CALIBRATION_TOLERANCE: float = 1e-6
    CALIBRATION_DAMPING: float = 0.01

    # Ground station consistency advisory (km)
    GS_DISTANCE_WARN_KM: float = 50.0
    GS_DISTANCE_CRITICAL_KM: float = 200.0

    class Config:
        case_sensitive = True
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()


def get_settings() -> Settings:
    """Get application settings with dependency injection support."""
    return settings
