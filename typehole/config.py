"""
Configuration, constants, and logging setup.
"""

import os
import logging
from pathlib import Path

from dotenv import load_dotenv

# --- LOAD ENV ---
load_dotenv()

# --- LOGGING ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("typehole")


def log_event(level: int, message: str, **data):
    """Lightweight structured logging helper."""
    try:
        serialized = " | ".join(f"{k}={v}" for k, v in data.items())
        logger.log(level, f"{message}{' | ' + serialized if serialized else ''}")
    except Exception:
        logger.log(level, message)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off", "")


# --- SERVER ---
PORT = int(os.getenv("TYPEHOLE_PORT", 17341))
WORKSPACE_DIR = Path(os.getenv("TYPEHOLE_WORKSPACE", os.getcwd()))
WATCH_FILES = _env_flag("TYPEHOLE_WATCH", True)

# --- CONSTANTS ---
PLACEHOLDER_TYPE = "AutoDiscovered"
RUNTIME_MODULE = "typehole"
SUPPORTED_EXTENSIONS = (".py",)
IGNORED_DIRECTORIES = (
    ".git",
    ".venv",
    "venv",
    "__pycache__",
    "node_modules",
    ".pytest_cache",
    ".mypy_cache",
    "build",
    "dist",
)
