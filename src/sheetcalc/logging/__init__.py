"""Structured event logging for sheetcalc.

Provides a unified event schema, filesystem NDJSON sink, and safe
emit helpers that never raise uncaught exceptions.
"""

from sheetcalc.logging.events import (
    EventLevel,
    EventType,
    SheetcalcEvent,
    clear_project_dir,
    emit,
    emit_error,
    emit_info,
    emit_warning,
    make_cell_event,
    set_project_dir,
)
from sheetcalc.logging.sink import EventSink

__all__ = [
    "EventLevel",
    "EventSink",
    "EventType",
    "SheetcalcEvent",
    "clear_project_dir",
    "emit",
    "emit_error",
    "emit_info",
    "emit_warning",
    "make_cell_event",
    "set_project_dir",
]
