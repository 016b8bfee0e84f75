"""
Logging Configuration

Where the translation service writes its logs, how much of each prompt and
translation is recorded, and how records are laid out.
"""
import os
from pathlib import Path


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# =========================
# Destinations
# =========================

# Rotated log files go here (default: logs/output/ next to this package)
LOG_OUTPUT_DIR = os.getenv("LOG_OUTPUT_DIR", str(Path(__file__).parent / "output"))

# false: console only
LOG_TO_FILE = _env_flag("LOG_TO_FILE", "true")

# false: files only (useful when stdout is shipped elsewhere)
LOG_TO_CONSOLE = _env_flag("LOG_TO_CONSOLE", "true")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOG_FILE_REQUESTS = "translation_requests.log"
LOG_FILE_ERRORS = "translation_errors.log"
LOG_FILE_METRICS = "translation_metrics.log"

# 10MB per file, five rotations
LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", str(10 * 1024 * 1024)))
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))

# =========================
# Text Content
# =========================

# Source texts and translations may be confidential. With false, only their
# lengths are logged.
LOG_TEXT_PREVIEWS = _env_flag("LOG_TEXT_PREVIEWS", "true")

# Characters kept from a prompt or translation when previews are on
LOG_PREVIEW_LENGTH = int(os.getenv("LOG_PREVIEW_LENGTH", "200"))

# =========================
# Record Layout
# =========================

LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# request_id and user_id are stamped by logs.logging_config.ContextFilter
LOG_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(request_id)-36s | %(user_id)-20s | %(message)s"

LOG_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(request_id)-36s | %(user_id)-20s | "
    "%(name)-22s | %(message)s"
)

# Metrics lines are already JSON
LOG_METRICS_FORMAT = "%(message)s"
