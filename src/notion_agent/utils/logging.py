"""Structured logging setup for notion-agent."""

import structlog
from pathlib import Path
from typing import Any
import os


def configure_logging() -> None:
    """
    Configure structlog for JSON logging to ~/.cache/notion-agent/logs/notion-agent.log.

    Log level can be controlled via NOTION_AGENT_LOG_LEVEL environment variable:
    - Set to "DEBUG" to see LLM payloads and every parser tier decision
    - Defaults to "INFO" if not set

    Log levels:
    - DEBUG: LLM request payloads, rule matches, section scoring
    - INFO: Parsed commands, state transitions, executed actions
    - WARNING: Tier fallbacks, retry attempts, advisory section matches
    - ERROR: Command failures after retries, config errors

    Example:
        NOTION_AGENT_LOG_LEVEL=DEBUG notion-agent chat

        # View logs with jq for readability:
        tail -f ~/.cache/notion-agent/logs/notion-agent.log | jq .
    """
    log_dir = Path.home() / ".cache" / "notion-agent" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "notion-agent.log"

    log_level = os.environ.get("NOTION_AGENT_LOG_LEVEL", "INFO").upper()

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
        >>> logger.info("command_parsed", tier="rules", count=2)
    """
    return structlog.get_logger(name)
