# settings.py
import os
from typing import Optional

from pydantic import BaseModel


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name, "")
    return float(value) if value else None


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name, "")
    return int(value) if value else None


class Settings(BaseModel):
    API_KEY: str = os.getenv("GOOGLE_API_KEY", "")
    DEFAULT_MODEL: str = os.getenv("DEFAULT_MODEL", "gemini-2.0-flash")
    # JSON file of {"<key>": {"id": ..., "name": ...}}; empty uses the built-in catalog
    MODEL_CATALOG_PATH: str = os.getenv("MODEL_CATALOG_PATH", "")

    # seconds per remote call (per chunk when streaming); 0 waits forever
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "60"))

    # generation knobs, sent only when set
    SYSTEM_INSTRUCTION: str = os.getenv("SYSTEM_INSTRUCTION", "")
    TEMPERATURE: Optional[float] = _optional_float("TEMPERATURE")
    MAX_OUTPUT_TOKENS: Optional[int] = _optional_int("MAX_OUTPUT_TOKENS")

    # server
    MAX_HISTORY_MESSAGES: int = int(os.getenv("MAX_HISTORY_MESSAGES", "0"))
    CORS_ALLOW_ORIGINS: str = os.getenv("CORS_ALLOW_ORIGINS", "*")
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "3030"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
