"""Fire-and-forget audit recorder.

``record()`` hands the event to a small thread pool and returns immediately.
It never raises into the caller and a failed write is logged, not retried.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.schemas_audit import AuditAction, AuditEvent

logger = get_logger(__name__)

_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    if _executor is not None:
        return _executor
    with _executor_lock:
        if _executor is None:
            try:
                workers = get_settings().AUDIT_WORKERS
            except Exception:
                workers = 2
            _executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="audit")
        return _executor


def _write(row: dict[str, Any]) -> None:
    """Persist one audit row. Swallows and logs store failures."""
    from app.db import audit_log as audit_db

    try:
        audit_db.insert_audit_event(row)
    except Exception as e:
        logger.error(f"Failed to write audit event {row.get('action')}: {e}")


def _dispatch(row: dict[str, Any]) -> None:
    _get_executor().submit(_write, row)


def record(event: AuditEvent) -> None:
    """Record an audit event without blocking the request path."""
    try:
        if event.action == AuditAction.SCOPE_VIOLATION_PREVENTED:
            logger.log(
                logging.ERROR,
                "Scope violation prevented",
                extra={"extra_data": {
                    "actor_kind": event.actor_kind.value,
                    "actor_id": str(event.actor_id) if event.actor_id else None,
                    **(event.metadata or {}),
                }},
            )
        _dispatch(event.to_row())
    except Exception as e:
        logger.error(f"Failed to dispatch audit event {event.action.value}: {e}")


def shutdown(wait: bool = True) -> None:
    """Flush pending audit writes (used at application shutdown)."""
    global _executor
    with _executor_lock:
        executor, _executor = _executor, None
    if executor is not None:
        executor.shutdown(wait=wait)
