"""
CONFIGURATION MODULE
====================

PURPOSE:
  Central place for all Workiwi settings: API keys, paths, model names, the
  default project ruleset, and the fixed user-facing messages. Each team runs
  its own copy of this backend with its own .env and database/ folder.

WHAT THIS FILE DOES:
  - Loads environment variables from .env (so API keys stay out of code).
  - Defines the path to database/docs_data (used by the JSON document store).
  - Exposes GROQ_API_KEYS, GROQ_MODEL and generation limits for the LLM.
  - Defines the chat history window, max message length and document version.
  - Holds the seed project and its ruleset shown on first start.

USAGE:
  Import what you need: `from config import GROQ_API_KEYS, MAX_CHAT_HISTORY_TURNS`
  All services import from here so behaviour is consistent.
"""

import os
import logging
from pathlib import Path
from dotenv import load_dotenv


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# ENVIRONMENT
# -----------------------------------------------------------------------------
# Load environment variables from .env file (if it exists).
load_dotenv()


# -----------------------------------------------------------------------------
# BASE PATH
# -----------------------------------------------------------------------------
BASE_DIR = Path(__file__).parent

# ============================================================================
# DATABASE PATHS
# ============================================================================
# docs_data holds documents.json when DOCUMENT_STORE_BACKEND=json.
# The directory is created lazily by the JSON backing, not at import time.

DOCS_DATA_DIR = Path(os.getenv("DOCS_DATA_DIR", str(BASE_DIR / "database" / "docs_data")))

# "memory" keeps documents in a dict for the lifetime of the process;
# "json" writes them to DOCS_DATA_DIR/documents.json.
DOCUMENT_STORE_BACKEND = os.getenv("DOCUMENT_STORE_BACKEND", "memory").strip().lower()

# ============================================================================
# GROQ API CONFIGURATION
# ============================================================================
# Groq is the generation backend for every agent reply.
# Set GROQ_API_KEY and optionally GROQ_API_KEY_2, GROQ_API_KEY_3, ... (no upper limit).
# Keys are used round-robin; if one fails the next one is tried.

def _load_groq_api_keys() -> list:
    """
    Load all GROQ API keys from the environment.
    Reads GROQ_API_KEY first, then GROQ_API_KEY_2, GROQ_API_KEY_3, ... until
    a number has no value. Returns a list of non-empty key strings.
    """
    keys = []
    first = os.getenv("GROQ_API_KEY", "").strip()
    if first:
        keys.append(first)
    i = 2
    while True:
        k = os.getenv(f"GROQ_API_KEY_{i}", "").strip()
        if not k:
            break
        keys.append(k)
        i += 1
    return keys


def _int_env(name: str, default: int) -> int:
    """Read an integer setting; fall back to the default (with a warning) on junk values."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s: %r, using %s", name, raw, default)
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid number for %s: %r, using %s", name, raw, default)
        return default


GROQ_API_KEYS = _load_groq_api_keys()
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
GROQ_TEMPERATURE = _float_env("GROQ_TEMPERATURE", 0.7)

# Cap on tokens generated per reply.
MAX_OUTPUT_TOKENS = _int_env("MAX_OUTPUT_TOKENS", 1000)

# ============================================================================
# CHAT LIMITS
# ============================================================================
# Number of prior turns (not pairs) sent to the LLM with each message.
# Older turns stay in the session but are never sent or summarized.
MAX_CHAT_HISTORY_TURNS = _int_env("MAX_CHAT_HISTORY_TURNS", 10)

# Maximum length (characters) for a single user message.
MAX_MESSAGE_LENGTH = 32_000

# ============================================================================
# DOCUMENTS
# ============================================================================
DOCUMENT_VERSION = "1.0"

# ============================================================================
# USER-FACING MESSAGES
# ============================================================================
# Shown as a synthesized agent turn when the generation backend fails.
CHAT_FAILURE_MESSAGE = (
    "Sorry, an error occurred while connecting to the AI server. "
    "Please check that the backend is running and the API key is valid."
)

# Shown when Groq reports a rate limit (daily token quota).
RATE_LIMIT_MESSAGE = (
    "You've reached your daily API limit for this workspace. "
    "Credits reset in a few hours. Please try again later."
)

# ============================================================================
# SEED PROJECT
# ============================================================================
# Loaded into the project store on startup so the UI has something to show.
DEFAULT_PROJECT = {
    "name": "Workiwi MVP",
    "description": "Team AI collaboration tool",
    "settings": {
        "techStack": ["React", "Tailwind CSS", "Supabase", "Node.js"],
        "convention": "Use functional components, prefer arrow functions, keep state immutable",
        "tone": "Friendly and logical",
        "customInstructions": "Explain things so that a junior developer can follow",
    },
}

# ============================================================================
# SERVER
# ============================================================================
HOST = os.getenv("HOST", "0.0.0.0")
PORT = _int_env("PORT", 3001)
