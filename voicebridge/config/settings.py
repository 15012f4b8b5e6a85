"""
Environment-driven settings.

Values are read once at import time, after loading a local ``.env`` file if one
exists. Code that depends on a setting reads it through this module at call time
(``settings.EXOTEL_SID``) so a missing value is noticed where it matters.
"""

import os
from pathlib import Path

import dotenv

from voicebridge.config.constants import DEFAULT_REALTIME_MODEL, DEFAULT_REALTIME_URL

env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

# OpenAI Realtime API
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_REALTIME_URL = os.getenv("OPENAI_REALTIME_URL", DEFAULT_REALTIME_URL)
OPENAI_REALTIME_MODEL = os.getenv("OPENAI_REALTIME_MODEL", DEFAULT_REALTIME_MODEL)

# Exotel call control
EXOTEL_API_KEY = os.getenv("EXOTEL_API_KEY")
EXOTEL_API_TOKEN = os.getenv("EXOTEL_API_TOKEN")
EXOTEL_SID = os.getenv("EXOTEL_SID")
EXOTEL_API_HOST = os.getenv("EXOTEL_API_HOST", "api.exotel.com")
EXOTEL_PHONE_NUMBER = os.getenv("EXOTEL_PHONE_NUMBER")
PUBLIC_URL = os.getenv("PUBLIC_URL")

# Conversation registry
CONVERSATION_MAX_AGE_MINUTES = int(os.getenv("CONVERSATION_MAX_AGE_MINUTES", "30"))
CONVERSATION_SWEEP_INTERVAL_MINUTES = int(
    os.getenv("CONVERSATION_SWEEP_INTERVAL_MINUTES", "10")
)

# Reference data for the in-process data store
HOSPITAL_DATA_FILE = os.getenv(
    "HOSPITAL_DATA_FILE",
    str(Path(__file__).resolve().parent.parent / "data" / "hospital.yaml"),
)

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
ENV = os.getenv("ENV", "production")
