import os
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root, used to locate the optional .env file next to run.py.
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class Settings(BaseSettings):
    """
    Client settings are loaded from environment variables.
    Every value has a default so the core can be imported without a .env file.
    """
    # --- Backend Endpoints ---
    API_BASE_URL: str = Field("http://127.0.0.1:3000/api", description="REST API root, including the /api prefix")
    SOCKET_URL: str = Field("http://127.0.0.1:3000", description="socket.io server URL")

    # --- Transport ---
    REQUEST_TIMEOUT_SECONDS: float = Field(
        10.0,
        description="Fixed timeout applied to every outbound REST call."
    )

    # --- Redis Configuration (durable token storage) ---
    REDIS_HOST: str = Field("127.0.0.1", description="Redis server host")
    REDIS_PORT: int = Field(6379, description="Redis server port")
    REDIS_DB: int = Field(0, description="Redis database index")

    # --- Pricing ---
    APP_FEE: int = Field(2500, description="Flat platform fee added to every rental total.")

    # --- Background Reconciliation ---
    CHAT_RESYNC_INTERVAL_SECONDS: int = Field(
        30,
        description="How often chat sessions are refetched while the realtime channel is degraded."
    )
    RENTAL_POLL_INTERVAL_SECONDS: int = Field(60, description="How often tracked rentals are refetched.")

    # --- Account used by run.py ---
    ACCOUNT_EMAIL: Optional[str] = Field(None, description="Sign-in email for the demo runner")
    ACCOUNT_PASSWORD: Optional[str] = Field(None, description="Sign-in password for the demo runner")

    # --- Logging Configuration ---
    LOG_LEVEL: str = Field("INFO", description="Logging level (e.g., DEBUG, INFO, WARNING, ERROR)")
    LOG_FILE: Optional[str] = Field(None, description="Optional path of a rotating log file, in addition to stderr")

    model_config = SettingsConfigDict(
        env_file=os.path.join(BASE_DIR, '.env'),
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )


# Create a single, importable instance of the settings
settings = Settings()
