"""
CareGuard Configuration

Central settings loaded from environment variables.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    # --- Core Versioning ---
    CORE_VERSION: str = "1.0.0"
    API_VERSION: str = "1"

    # --- Input Sanitization ---
    MAX_INPUT_LENGTH: int = int(os.getenv("CAREGUARD_MAX_INPUT_LENGTH", "2000"))
    REDACTION_MARKER: str = os.getenv("CAREGUARD_REDACTION_MARKER", "[FILTERED]")

    # --- Output Filter ---
    # Above this many violations the response is blocked without a rewrite
    MAX_REPHRASABLE_VIOLATIONS: int = int(
        os.getenv("CAREGUARD_MAX_REPHRASABLE_VIOLATIONS", "3")
    )
    # Extra generation attempts after a Layer 1 (boundary) rejection
    MAX_BOUNDARY_REGENERATION_ATTEMPTS: int = int(
        os.getenv("CAREGUARD_MAX_BOUNDARY_RETRIES", "2")
    )

    # --- Server ---
    HOST: str = os.getenv("CAREGUARD_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("CAREGUARD_PORT", "8000"))

    # --- CORS ---
    CORS_ORIGINS: str = os.getenv("CAREGUARD_CORS_ORIGINS", "*")


settings = Settings()
