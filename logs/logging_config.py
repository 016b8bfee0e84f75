"""
LLM Logging

Request/response logging for every model call, plus a JSON metrics stream.

Each log record carries the current request_id and user_id, taken from
context variables so concurrent requests never mix their identifiers.
"""
import os
import json
import uuid
import logging
from contextvars import ContextVar
from dataclasses import dataclass, asdict
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import (
    LOG_OUTPUT_DIR,
    LOG_TO_FILE,
    LOG_TO_CONSOLE,
    LOG_LEVEL,
    LOG_MAX_BYTES,
    LOG_BACKUP_COUNT,
    LOG_TEXT_PREVIEWS,
    LOG_PREVIEW_LENGTH,
    LOG_DATE_FORMAT,
    LOG_CONSOLE_FORMAT,
    LOG_FILE_FORMAT,
    LOG_METRICS_FORMAT,
    LOG_FILE_REQUESTS,
    LOG_FILE_ERRORS,
    LOG_FILE_METRICS,
)

LOG_DIR = LOG_OUTPUT_DIR

LLM_LOGGER_NAME = "llm"
METRICS_LOGGER_NAME = "llm.metrics"

_request_id: ContextVar[str] = ContextVar("request_id", default="-")
_user_id: ContextVar[str] = ContextVar("user_id", default="-")

_configured = False


# =========================
# Context Helpers
# =========================

def generate_request_id() -> str:
    return str(uuid.uuid4())


def get_request_id() -> str:
    return _request_id.get()


def set_user_id(user_id: Optional[str]) -> None:
    _user_id.set(user_id or "-")


class RequestContext:
    """
    Bind a request_id to every log record emitted inside the block.

    Example:
        with RequestContext() as request_id:
            logger.info("translating")
    """

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id or generate_request_id()
        self._token = None

    def __enter__(self) -> str:
        self._token = _request_id.set(self.request_id)
        return self.request_id

    def __exit__(self, exc_type, exc, tb):
        _request_id.reset(self._token)
        return False


class ContextFilter(logging.Filter):
    """Inject request_id and user_id into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        record.user_id = _user_id.get()
        return True


# =========================
# Log Payloads
# =========================

@dataclass
class LLMMetrics:
    request_id: str
    model: str
    backend: str
    task: str
    latency_ms: float
    prompt_chars: int
    response_chars: int
    status: str
    chunks: int = 0
    error_reason: Optional[str] = None


def _preview(text: str, enabled: Optional[bool] = None) -> str:
    """Shortened, single-line text for a log record, or just its length when previews are off."""
    if not (LOG_TEXT_PREVIEWS if enabled is None else enabled):
        return f"<{len(text)} chars>"
    text = text.replace("\n", "\\n")
    if len(text) <= LOG_PREVIEW_LENGTH:
        return text
    return text[:LOG_PREVIEW_LENGTH] + "..."


# =========================
# Setup
# =========================

def _file_handler(filename: str, level: int, fmt: str) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        os.path.join(LOG_DIR, filename),
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=LOG_DATE_FORMAT))
    handler.addFilter(ContextFilter())
    return handler


def setup_llm_logging(log_to_file: Optional[bool] = None, log_to_console: Optional[bool] = None) -> logging.Logger:
    """
    Configure the LLM and metrics loggers. Safe to call more than once.

    Args:
        log_to_file: Override LOG_TO_FILE
        log_to_console: Override LOG_TO_CONSOLE

    Returns:
        The LLM logger
    """
    global _configured

    llm_logger = logging.getLogger(LLM_LOGGER_NAME)
    if _configured:
        return llm_logger

    level = getattr(logging, LOG_LEVEL, logging.INFO)
    llm_logger.setLevel(level)

    if LOG_TO_CONSOLE if log_to_console is None else log_to_console:
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(logging.Formatter(LOG_CONSOLE_FORMAT, datefmt=LOG_DATE_FORMAT))
        console.addFilter(ContextFilter())
        llm_logger.addHandler(console)

    metrics_logger = logging.getLogger(METRICS_LOGGER_NAME)
    metrics_logger.setLevel(logging.INFO)
    metrics_logger.propagate = False

    if LOG_TO_FILE if log_to_file is None else log_to_file:
        os.makedirs(LOG_DIR, exist_ok=True)
        llm_logger.addHandler(_file_handler(LOG_FILE_REQUESTS, level, LOG_FILE_FORMAT))
        llm_logger.addHandler(_file_handler(LOG_FILE_ERRORS, logging.ERROR, LOG_FILE_FORMAT))
        metrics_logger.addHandler(_file_handler(LOG_FILE_METRICS, logging.INFO, LOG_METRICS_FORMAT))

    _configured = True
    llm_logger.debug(f"[LOGGING] Configured | level={LOG_LEVEL} | dir={LOG_DIR} | previews={LOG_TEXT_PREVIEWS}")
    return llm_logger


def get_llm_logger(name: Optional[str] = None) -> logging.Logger:
    """Get the LLM logger, or a child of it."""
    if name:
        return logging.getLogger(f"{LLM_LOGGER_NAME}.{name}")
    return logging.getLogger(LLM_LOGGER_NAME)


def get_metrics_logger() -> logging.Logger:
    return logging.getLogger(METRICS_LOGGER_NAME)


# =========================
# Call Logging
# =========================

def log_llm_request(
    model: str,
    backend: str,
    task: str,
    prompt: str,
    temperature: Optional[float] = None,
    top_p: Optional[float] = None,
    top_k: Optional[int] = None,
    stream: bool = False
) -> str:
    """
    Log an outgoing LLM request.

    Returns:
        The request_id bound to the current context (a new one if unbound)
    """
    request_id = get_request_id()
    if request_id == "-":
        request_id = generate_request_id()

    get_llm_logger().info(
        f"[LLM_REQUEST] request_id={request_id} | task={task} | backend={backend} | "
        f"model={model} | stream={stream} | temperature={temperature} | "
        f"top_p={top_p} | top_k={top_k} | prompt_chars={len(prompt)} | "
        f"prompt={_preview(prompt)}"
    )
    return request_id


def log_llm_response(
    request_id: str,
    model: str,
    backend: str,
    response: str,
    latency_ms: float,
    status: str,
    error_message: Optional[str] = None
) -> None:
    """Log the outcome of an LLM request."""
    logger = get_llm_logger()
    if status == "success":
        logger.info(
            f"[LLM_RESPONSE] request_id={request_id} | backend={backend} | model={model} | "
            f"latency_ms={latency_ms:.1f} | response_chars={len(response)} | "
            f"response={_preview(response)}"
        )
    else:
        logger.error(
            f"[LLM_RESPONSE] request_id={request_id} | backend={backend} | model={model} | "
            f"latency_ms={latency_ms:.1f} | status={status} | error={error_message}"
        )


def log_metrics(**fields) -> LLMMetrics:
    """Write one JSON metrics line. Accepts the LLMMetrics fields as keywords."""
    metrics = LLMMetrics(**fields)
    get_metrics_logger().info(json.dumps(asdict(metrics), ensure_ascii=False))
    return metrics
