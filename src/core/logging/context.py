"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_batch_id: ContextVar[str] = ContextVar("batch_id", default="")
_stage_name: ContextVar[str] = ContextVar("stage_name", default="")
_realm: ContextVar[str] = ContextVar("realm", default="")
_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


def set_log_context(
    batch_id: Optional[str] = None,
    stage: Optional[str] = None,
    realm: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> None:
    if batch_id is not None:
        _batch_id.set(batch_id)
    if stage is not None:
        _stage_name.set(stage)
    if realm is not None:
        _realm.set(realm)
    if trace_id is not None:
        _trace_id.set(trace_id)


def get_log_context() -> Dict[str, str]:
    return {
        "batch_id": _batch_id.get(),
        "stage": _stage_name.get(),
        "realm": _realm.get(),
        "trace_id": _trace_id.get(),
    }


def clear_log_context() -> None:
    _batch_id.set("")
    _stage_name.set("")
    _realm.set("")
    _trace_id.set("")
