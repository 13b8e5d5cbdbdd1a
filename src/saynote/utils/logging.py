"""Structured logging setup for saynote."""

import structlog
from pathlib import Path
from typing import Any, Optional
import os


def configure_logging(log_dir: Optional[Path] = None) -> None:
    """
    Configure structlog for JSON logging to ~/.cache/saynote/logs/saynote.log.

    Log level can be controlled via SAYNOTE_LOG_LEVEL environment variable:
    - Set to "DEBUG" to see NLU request/response details and every tree edit
    - Defaults to "INFO" if not set

    Log levels:
    - DEBUG: NLU payloads, selector resolution, history stack sizes
    - INFO: Interpreted intents, committed edits, page creation/deletion
    - WARNING: Fallbacks (unrecognized commands, failed NLU calls), stale links
    - ERROR: Persistence failures, partial cascade deletions

    Args:
        log_dir: Directory for the log file (default: ~/.cache/saynote/logs)

    Example:
        # Enable debug logging
        export SAYNOTE_LOG_LEVEL=DEBUG
        saynote say <page-id> "make the last paragraph bold"

        # View logs with jq for readability:
        tail -f ~/.cache/saynote/logs/saynote.log | jq .
    """
    if log_dir is None:
        log_dir = Path.home() / ".cache" / "saynote" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "saynote.log"

    log_level = os.environ.get("SAYNOTE_LOG_LEVEL", "INFO").upper()

    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
    if log_level not in valid_levels:
        log_level = "INFO"

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=open(log_file, "a")),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of calling module)

    Returns:
        Structured logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("intent_interpreted", page_id="page_1", intent="ApplyFormatting")
    """
    return structlog.get_logger(name)
