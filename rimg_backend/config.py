"""
Configuration for the random image server.

Values are read from the environment (after loading a `.env` file, if any)
once, at import time. The CLI in `rimg_backend.__main__` can override the
folder, host, port and watcher flag.
"""
import os
import logging
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from rimg_shared import IMAGE_EXTENSIONS, normalize_extensions

from .utils import env_bool, split_csv

logger = logging.getLogger(__name__)


def _load_env_file() -> str | None:
    """
    Load a `.env` file into the environment without overriding real variables.

    `RIMG_ENV_FILE` names the file explicitly; otherwise the nearest `.env`
    from the working directory upwards is used.
    """
    path = os.getenv("RIMG_ENV_FILE") or find_dotenv(usecwd=True)
    if not path:
        return None
    if not os.path.isfile(path):
        logger.warning("Env file %s not found, ignoring", path)
        return None
    load_dotenv(path, override=False)
    return path


def _env_raw(*names: str, default: str | None = None) -> str | None:
    for name in names:
        if not name:
            continue
        val = os.getenv(name)
        if val is not None and str(val).strip() != "":
            return str(val).strip()
    return default


def _env_int(default: int, *names: str, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_bool(default: bool, *names: str) -> bool:
    for name in names:
        if name and name in os.environ:
            return env_bool(name, default)
    return default


def _resolve_image_folder() -> Path:
    raw = _env_raw("RIMG_IMAGE_FOLDER", "IMAGE_FOLDER_PATH", default="./images") or "./images"
    try:
        return Path(raw).expanduser().resolve()
    except (OSError, RuntimeError):
        logger.warning("Failed to resolve image folder %r, using it as given", raw)
        return Path(raw)


def _resolve_extensions() -> frozenset[str]:
    configured = normalize_extensions(split_csv(_env_raw("RIMG_EXTENSIONS")))
    if configured:
        return configured
    return IMAGE_EXTENSIONS


# Settings files written for earlier deployments (IMAGE_FOLDER_PATH, PORT) keep working.
ENV_FILE = _load_env_file()

# --- Server ---
HOST = _env_raw("RIMG_HOST", "HOST", default="0.0.0.0") or "0.0.0.0"
PORT = _env_int(3000, "RIMG_PORT", "PORT", min_value=1, max_value=65535)
CORS_ORIGINS = tuple(split_csv(_env_raw("RIMG_CORS_ORIGINS", default="*")))
LOG_LEVEL = (_env_raw("RIMG_LOG_LEVEL", default="INFO") or "INFO").upper()

# --- Index ---
IMAGE_FOLDER_PATH = _resolve_image_folder()
IMAGE_FOLDER = str(IMAGE_FOLDER_PATH)
SUPPORTED_EXTENSIONS = _resolve_extensions()
CREATE_IMAGE_FOLDER = _env_bool(True, "RIMG_CREATE_IMAGE_FOLDER")

# --- Watcher ---
# Stability threshold / poll interval of the write-settled debounce.
WATCHER_ENABLED = _env_bool(True, "RIMG_WATCHER_ENABLED", "RIMG_ENABLE_WATCHER")
WATCHER_STABILITY_MS = _env_int(2000, "RIMG_WATCHER_STABILITY_MS", min_value=0, max_value=120_000)
WATCHER_POLL_MS = _env_int(100, "RIMG_WATCHER_POLL_MS", min_value=10, max_value=10_000)

# --- Streaming ---
STREAM_CHUNK_BYTES = _env_int(256 * 1024, "RIMG_STREAM_CHUNK_BYTES", min_value=4096, max_value=16 * 1024 * 1024)

# Paths whose relative form matches this pattern are never indexed or watched
# (default: any path component starting with a dot).
IGNORE_PATTERN = _env_raw("RIMG_IGNORE_PATTERN", default=r"(^|[/\\])\.") or r"(^|[/\\])\."
