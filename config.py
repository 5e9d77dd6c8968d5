"""
Runtime configuration, read from the environment (and a local .env file).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).parent

DATABASE_URL = os.environ.get("DATABASE_URL") or f"sqlite:///{BASE_DIR / 'flashcards.db'}"

# Any OpenAI-compatible chat completions endpoint
LLM_API_KEY = os.environ.get("LLM_API_KEY") or os.environ.get("OPENAI_API_KEY")
LLM_BASE_URL = os.environ.get("LLM_BASE_URL", "https://api.openai.com/v1")
LLM_MODEL = os.environ.get("LLM_MODEL", "gpt-4o")
LLM_TIMEOUT = float(os.environ.get("LLM_TIMEOUT", "120"))

# Documents longer than this are cut before prompting
MAX_DOCUMENT_CHARS = int(os.environ.get("MAX_DOCUMENT_CHARS", "20000"))
DEFAULT_CARD_COUNT = int(os.environ.get("DEFAULT_CARD_COUNT", "10"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Study sessions idle longer than this are dropped from memory
SESSION_TTL_MINUTES = int(os.environ.get("SESSION_TTL_MINUTES", "60"))
MAX_SESSIONS = int(os.environ.get("MAX_SESSIONS", "1000"))
