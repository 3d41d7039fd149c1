"""Context managers for structured logging."""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

from core.logging.context import get_log_context, set_log_context
from core.logging.utilities import log_with_context


class LogContext:
    """
    Context manager for temporary log context.

    Usage:
        with LogContext(stage="sync", batch_id=batch_id):
            # All logs in this block will have stage and batch_id
            await engine.sync_users(records, attributes)
    """

    def __init__(
        self,
        batch_id: Optional[str] = None,
        stage: Optional[str] = None,
        realm: Optional[str] = None,
        trace_id: Optional[str] = None,
    ):
        self.new_context = {
            "batch_id": batch_id,
            "stage": stage,
            "realm": realm,
            "trace_id": trace_id,
        }
        self.old_context: Dict[str, str] = {}

    def __enter__(self) -> "LogContext":
        self.old_context = get_log_context()
        for key, value in self.new_context.items():
            if value is not None:
                set_log_context(**{key: value})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        set_log_context(
            batch_id=self.old_context.get("batch_id", ""),
            stage=self.old_context.get("stage", ""),
            realm=self.old_context.get("realm", ""),
            trace_id=self.old_context.get("trace_id", ""),
        )
        return False


@contextmanager
def log_phase(
    logger: logging.Logger,
    phase: str,
    level: int = logging.DEBUG,
    **context: Any,
):
    """
    Context manager for timing a phase.

    Example:
        with log_phase(logger, "parse_xml", document_bytes=len(data)):
            result = parse_xml_document(text)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        log_with_context(
            logger,
            level,
            f"Phase complete: {phase}",
            phase=phase,
            duration_ms=round(duration_ms, 2),
            **context,
        )
