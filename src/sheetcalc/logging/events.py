"""Unified event schema and module-level emit helpers.

All timestamps use UTC ISO-8601 with ``Z`` suffix.  The ``emit()``
family of functions is safe to call from any context -- failures are
swallowed and printed to stderr.
"""

from __future__ import annotations

import sys
import time
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventLevel(str, Enum):
    info = "info"
    warning = "warning"
    error = "error"


class EventType(str, Enum):
    # Cell lifecycle
    cell_evaluated = "cell_evaluated"
    cell_error = "cell_error"

    # Sheet lifecycle
    sheet_loaded = "sheet_loaded"
    sheet_evaluated = "sheet_evaluated"


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

FORMULA_EVAL_ERROR = "formula_eval_error"
FORMULA_PARSE_ERROR = "formula_parse_error"


# ---------------------------------------------------------------------------
# Attribution invariants
# ---------------------------------------------------------------------------

_CELL_EVENT_REQUIRED = {"label"}
_SHEET_EVENT_REQUIRED = {"sheet"}

_EVENT_REQUIRED_KEYS: dict[str, set[str]] = {
    EventType.cell_evaluated.value: _CELL_EVENT_REQUIRED,
    EventType.cell_error.value: _CELL_EVENT_REQUIRED,
    EventType.sheet_loaded.value: _SHEET_EVENT_REQUIRED,
    EventType.sheet_evaluated.value: _SHEET_EVENT_REQUIRED,
}


def _validate_attribution(event: SheetcalcEvent) -> SheetcalcEvent:
    """Check required context keys; downgrade to warning if missing."""
    event_type = event.event_type.value if isinstance(event.event_type, EventType) else event.event_type
    required = _EVENT_REQUIRED_KEYS.get(event_type, set())
    missing = required - set(event.context.keys())
    if not missing:
        return event
    ctx = dict(event.context)
    ctx["_missing_attribution"] = sorted(missing)
    return event.model_copy(update={"level": EventLevel.warning, "context": ctx})


def make_cell_event(
    event_type: EventType,
    level: EventLevel,
    message: str,
    *,
    label: str,
    sheet: str | None = None,
    error_code: str | None = None,
    extra: dict[str, Any] | None = None,
) -> SheetcalcEvent:
    """Build an event with guaranteed cell attribution context."""
    ctx: dict[str, Any] = {"label": label}
    if sheet is not None:
        ctx["sheet"] = sheet
    if extra:
        ctx.update(extra)
    return SheetcalcEvent(
        level=level,
        event_type=event_type,
        message=message,
        context=ctx,
        error_code=error_code,
    )


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------


def _utc_now() -> str:
    """Return current UTC timestamp in ISO-8601 with Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class SheetcalcEvent(BaseModel):
    """A single structured log event."""

    schema_version: int = 1
    ts: str = Field(default_factory=_utc_now)
    level: EventLevel
    event_type: EventType
    context: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    error_code: str | None = None


# ---------------------------------------------------------------------------
# Module-level sink reference
# ---------------------------------------------------------------------------

# Lazily initialised when ``set_project_dir`` is called.
_sink: Any = None  # EventSink | None


def set_project_dir(project_dir: Any) -> None:
    """Configure the module-level event sink for a project directory.

    If it is never called, ``emit()`` silently discards events.  Reads
    ``logging_enabled``, ``logging_fsync`` and ``logging_tail_bytes``
    from ``sheetcalc.yaml``.
    """
    global _sink
    from pathlib import Path

    from sheetcalc.logging.sink import EventSink
    from sheetcalc.project import load_project_config

    cfg = load_project_config(Path(project_dir))
    if not cfg.get("logging_enabled", True):
        _sink = None
        return

    _sink = EventSink(
        Path(project_dir),
        fsync=bool(cfg.get("logging_fsync", False)),
        tail_bytes=int(cfg["logging_tail_bytes"]),
    )


def clear_project_dir() -> None:
    """Detach the module-level sink; later events are discarded."""
    global _sink
    _sink = None


def get_sink() -> Any:
    """Return the module-level sink, or None."""
    return _sink


# ---------------------------------------------------------------------------
# Rate-limited stderr warnings
# ---------------------------------------------------------------------------

_last_stderr_ts: float = 0.0
_STDERR_INTERVAL_SECS = 60.0


def _stderr_warning(msg: str) -> None:
    """Print a warning to stderr, rate-limited to one per 60 seconds."""
    global _last_stderr_ts
    now = time.monotonic()
    if now - _last_stderr_ts < _STDERR_INTERVAL_SECS:
        return
    _last_stderr_ts = now
    print(f"[sheetcalc] {msg}", file=sys.stderr)


# ---------------------------------------------------------------------------
# Safe emit helpers
# ---------------------------------------------------------------------------


def emit(event: SheetcalcEvent, *, sheet: str | None = None) -> None:
    """Write an event to the global log and optionally to a per-sheet log.

    **Never raises.**  On failure, prints a rate-limited warning to stderr.
    """
    try:
        sink = get_sink()
        if sink is None:
            return
        sink.write(_validate_attribution(event), sheet=sheet)
    except Exception:
        _stderr_warning(f"logging failed: {traceback.format_exc()}")


def _emit_at(
    level: EventLevel,
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None,
    error_code: str | None,
    sheet: str | None,
) -> None:
    emit(
        SheetcalcEvent(
            level=level,
            event_type=event_type,
            message=message,
            context=context or {},
            error_code=error_code,
        ),
        sheet=sheet,
    )


def emit_info(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    sheet: str | None = None,
) -> None:
    """Emit an info-level event, e.g. ``sheet_loaded``."""
    _emit_at(EventLevel.info, event_type, message, context, None, sheet)


def emit_warning(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    sheet: str | None = None,
) -> None:
    """Emit a warning-level event; cells that evaluate to an error use this."""
    _emit_at(EventLevel.warning, event_type, message, context, error_code, sheet)


def emit_error(
    event_type: EventType,
    message: str,
    context: dict[str, Any] | None = None,
    *,
    error_code: str | None = None,
    sheet: str | None = None,
) -> None:
    _emit_at(EventLevel.error, event_type, message, context, error_code, sheet)
