"""Structured logging configuration for the planning poker room.

This module configures structured JSON logging for production environments and
human-readable format for local development.

Environment Variables:
    LOG_FORMAT: Set to "json" for JSON output, anything else for human-readable.
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Defaults to INFO.
"""

import logging
import os
import sys
from contextvars import ContextVar
from typing import Any

from pythonjsonlogger import jsonlogger

# Context variables for room-scoped data
_room_id: ContextVar[str | None] = ContextVar("room_id", default=None)
_participant_id: ContextVar[str | None] = ContextVar("participant_id", default=None)

# Environment configuration
LOG_FORMAT = os.getenv("LOG_FORMAT", "").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def get_room_id() -> str | None:
    """Get the current room ID from context."""
    return _room_id.get()


def set_room_id(room_id: str | None) -> None:
    """Set the room ID in context."""
    _room_id.set(room_id)


def get_participant_id() -> str | None:
    """Get the local participant ID from context."""
    return _participant_id.get()


def set_participant_id(participant_id: str | None) -> None:
    """Set the local participant ID in context."""
    _participant_id.set(participant_id)


class ContextAwareJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that includes room and participant info."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        """Add standard fields and context to log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["message"] = record.getMessage()

        room_id = get_room_id()
        if room_id:
            log_record["room_id"] = room_id

        participant_id = get_participant_id()
        if participant_id:
            log_record["participant_id"] = participant_id

        if hasattr(record, "extra_fields"):
            log_record.update(record.extra_fields)


class ContextAwareFormatter(logging.Formatter):
    """Human-readable formatter that prefixes the room and participant."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with context information."""
        import copy
        record = copy.copy(record)

        context_parts = []

        room_id = get_room_id()
        if room_id:
            context_parts.append(f"[room:{room_id}]")

        participant_id = get_participant_id()
        if participant_id:
            context_parts.append(f"[{participant_id[:8]}]")

        context_prefix = " ".join(context_parts)
        if context_prefix:
            context_prefix += " "

        original_msg = record.getMessage()
        record.msg = f"{context_prefix}{original_msg}"
        record.args = ()

        return super().format(record)


def setup_logging(stream: Any = None) -> None:
    """Configure structured logging based on environment.

    Call this function once at application startup before any logging occurs.
    Uses LOG_FORMAT=json for JSON output, otherwise human-readable format.

    Args:
        stream: Output stream for the handler (defaults to stdout)
    """
    level = getattr(logging, LOG_LEVEL, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)

    if LOG_FORMAT == "json":
        formatter = ContextAwareJsonFormatter(
            fmt="%(timestamp)s %(level)s %(logger)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    else:
        formatter = ContextAwareFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logger = logging.getLogger(__name__)
    logger.info(
        "Logging configured. Format: %s, Level: %s",
        "json" if LOG_FORMAT == "json" else "human-readable",
        LOG_LEVEL,
    )
