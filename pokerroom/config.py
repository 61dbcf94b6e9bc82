"""Configuration for the planning poker room."""

import logging
import os
from typing import Any

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

# OpenRouter API key for the estimate oracle (optional)
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")

# OpenRouter API endpoint
OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"

# Model consulted on behalf of simulated participants
ORACLE_MODEL = os.getenv("POKERROOM_ORACLE_MODEL", "google/gemini-3-flash-preview")

# Oracle request timeout in seconds
ORACLE_TIMEOUT = float(os.getenv("POKERROOM_ORACLE_TIMEOUT", "60"))

# Base data directory - configurable via environment
DATA_BASE_DIR = os.getenv("POKERROOM_DATA_DIR", "data")

# Local identity file (participant ids per room, display name)
IDENTITY_FILE = os.path.join(DATA_BASE_DIR, "identity.json")

# Record service the clients talk to
STORE_URL = os.getenv("POKERROOM_STORE_URL", "http://localhost:8002")

# Base URL embedded in share links
APP_URL = os.getenv("POKERROOM_APP_URL", "http://localhost:8002/")

# Permitted numeric scale, in order; "?" is the unknown card
SCALE = (1, 2, 3, 5, 8, 13, 21)
UNKNOWN_CARD = "?"

# Simulated participant pacing (seconds, uniform)
SIMULATED_VOTE_DELAY = (1.0, 4.0)

# Personas added per "add simulated participants" action
SIMULATED_PARTICIPANTS_PER_ADD = 3

# Estimate returned when the oracle is unavailable or misbehaves
FALLBACK_POINTS = 8

# Display name length bounds (after trimming)
MIN_DISPLAY_NAME = 2
MAX_DISPLAY_NAME = 20

# Record service reconnect backoff (seconds)
RECONNECT_INITIAL_DELAY = 1.0
RECONNECT_MAX_DELAY = 30.0


def is_oracle_configured() -> bool:
    """Check whether an oracle credential is present."""
    return bool(OPENROUTER_API_KEY)


def reload_config() -> dict[str, Any]:
    """
    Reload configuration from the .env file.

    Returns:
        Dict with reload status and the settings that changed
    """
    global OPENROUTER_API_KEY, ORACLE_MODEL, STORE_URL, APP_URL

    load_dotenv(override=True)

    OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
    ORACLE_MODEL = os.getenv("POKERROOM_ORACLE_MODEL", ORACLE_MODEL)
    STORE_URL = os.getenv("POKERROOM_STORE_URL", STORE_URL)
    APP_URL = os.getenv("POKERROOM_APP_URL", APP_URL)

    logger.info("Configuration reloaded")

    return {
        "status": "reloaded",
        "oracle_configured": is_oracle_configured(),
        "oracle_model": ORACLE_MODEL,
        "store_url": STORE_URL,
    }
