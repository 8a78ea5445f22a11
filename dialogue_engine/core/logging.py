"""
Structured logging configuration using structlog.

JSON output in production, pretty console output in debug mode, and
contextvars-based binding so every log line of a turn carries the
conversation and request identifiers. Each process run also writes to a
fresh file under logs/, keeping only the most recent runs.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List

import structlog
from structlog.typing import Processor

from dialogue_engine.core.config import settings

LOG_FILE_PATTERN = "dialogue_engine_*.log"


def _cull_old_logs(logs_dir: Path, keep: int) -> None:
    """Delete old run logs, keeping only the `keep` most recent."""
    log_files = sorted(
        logs_dir.glob(LOG_FILE_PATTERN),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for old_file in log_files[max(keep, 0) :]:
        old_file.unlink(missing_ok=True)


def configure_logging(log_runs_to_keep: int = 5, logs_dir: Path = Path("logs")) -> None:
    """Configure structlog for the application.

    Call this once at application startup, before any logging.

    Args:
        log_runs_to_keep: Number of recent run logs to retain
        logs_dir: Directory for run log files
    """
    logs_dir.mkdir(parents=True, exist_ok=True)

    # Make room for the file created below
    _cull_old_logs(logs_dir, keep=log_runs_to_keep - 1)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"dialogue_engine_{timestamp}.log"

    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if settings.debug:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    # Reset handlers so reconfiguration (tests, reloads) does not duplicate output
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    root_logger.setLevel(logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(console_handler)

    file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(file_handler)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if settings.debug else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a logger instance with the given name.

    Usage:
        from dialogue_engine.core.logging import get_logger

        log = get_logger(__name__)
        log.info("question_generated", phase="EXPLORE", topic_index=1)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """
    Bind context variables included in all subsequent logs of this task.

        bind_context(conversation_id=state.conversation_id, request_id=request_id)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables (call when a request completes)."""
    structlog.contextvars.clear_contextvars()
