import logging
import os
import structlog
import sys
from pathlib import Path
from dotenv import load_dotenv

SERVICE_NAME = "folio-service"
# third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("yfinance", "peewee", "urllib3", "httpx")


def _renderer(fmt: str):
    if fmt == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(level: str | None = None):
    """stdlib handlers + structlog processors; call once per process.

    LOG_LEVEL sets stdout verbosity, LOG_ERROR_FILE adds an ERROR-only file
    sink and LOG_FORMAT=console switches JSON lines to a readable dev format.
    """
    load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    error_log_path = os.getenv("LOG_ERROR_FILE", "").strip()
    fmt = os.getenv("LOG_FORMAT", "json").strip().lower()

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)
    formatter = logging.Formatter("%(message)s")

    handlers = [logging.StreamHandler(sys.stdout)]
    handlers[0].setLevel(log_level)
    if error_log_path:
        Path(error_log_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(error_log_path)
        file_handler.setLevel(logging.ERROR)
        handlers.append(file_handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            _renderer(fmt),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        cache_logger_on_first_use=False,
    )
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
