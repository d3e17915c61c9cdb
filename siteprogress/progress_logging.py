"""Logging and observability for Site Progress.

Everything logs under the ``siteprogress`` logger tree. ``setup_logging``
attaches a readable console handler and, optionally, a JSON-lines file
handler. Store mutations are timed with ``log_performance`` and
``log_operation``; entity events are fanned out to registered hooks.
"""

from __future__ import annotations

import json
import sys
import time
import logging as std_logging
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Callable, DefaultDict, Dict, List, Optional, Union

ROOT_LOGGER_NAME = "siteprogress"

CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(funcName)s:%(lineno)d] %(message)s"

# JSON key -> LogRecord attribute
_RECORD_FIELDS = {
    "level": "levelname",
    "logger": "name",
    "module": "module",
    "function": "funcName",
    "line": "lineno",
}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _child_logger(suffix: str) -> std_logging.Logger:
    return std_logging.getLogger(f"{ROOT_LOGGER_NAME}.{suffix}")


def _error_fields(error: BaseException) -> Dict[str, str]:
    return {"error_type": type(error).__name__, "error_message": str(error)}


def setup_logging(log_level: Union[str, int] = std_logging.INFO, log_file: Optional[Path] = None) -> None:
    """Configure the ``siteprogress`` logger tree.

    Console output always goes to stderr, leaving stdout to the MCP stdio
    transport. When ``log_file`` is given every record at DEBUG and above
    is also appended to it as one JSON object per line.
    """
    root = std_logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(log_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = std_logging.StreamHandler(sys.stderr)
    console.setLevel(log_level)
    console.setFormatter(std_logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(console)

    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        json_handler = std_logging.FileHandler(log_file, encoding="utf-8")
        json_handler.setLevel(std_logging.DEBUG)
        json_handler.setFormatter(JsonFormatter())
        root.addHandler(json_handler)

    root.info(f"Logging configured at {std_logging.getLevelName(root.level)}")


class JsonFormatter(std_logging.Formatter):
    """Render a record as a single JSON line.

    Structured data passed as ``extra={"extra_fields": {...}}`` is merged
    into the top level of the object.
    """

    def format(self, record: std_logging.LogRecord) -> str:
        entry: Dict[str, Any] = {"timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat()}
        entry.update({key: getattr(record, attr) for key, attr in _RECORD_FIELDS.items()})
        entry["message"] = record.getMessage()

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(getattr(record, "extra_fields", None) or {})

        return json.dumps(entry, ensure_ascii=False, default=str)


class PerformanceMonitor:
    """In-process store of timing samples keyed by metric name."""

    def __init__(self):
        self.metrics: DefaultDict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.logger = _child_logger("performance")

    def record_metric(self, name: str, value: Any, tags: Optional[Dict[str, str]] = None) -> None:
        sample = {"timestamp": _utc_now(), "name": name, "value": value, "tags": dict(tags or {})}
        self.metrics[name].append(sample)
        self.logger.debug(f"{name}={value}", extra={"extra_fields": sample})

    def get_metrics(self, name: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        """Return samples for one metric, or a copy of all of them."""
        if name is not None:
            return {name: list(self.metrics.get(name, []))}
        return {key: list(samples) for key, samples in self.metrics.items()}

    def clear(self) -> None:
        self.metrics.clear()


performance_monitor = PerformanceMonitor()


def log_performance(operation_name: str):
    """Time every call of the decorated function.

    Records ``<operation_name>_duration`` in the global monitor, tagged
    with the outcome, and re-raises whatever the function raised.
    """
    metric_name = f"{operation_name}_duration"

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = time.perf_counter() - started
                performance_monitor.record_metric(metric_name, elapsed, {"status": "error", "error_type": type(e).__name__})
                performance_monitor.logger.error(
                    f"{operation_name} raised {type(e).__name__} after {elapsed:.3f}s",
                    extra={"extra_fields": {"operation": operation_name, "duration": elapsed, **_error_fields(e)}},
                )
                raise
            performance_monitor.record_metric(metric_name, time.perf_counter() - started, {"status": "success"})
            return result

        return wrapper
    return decorator


@contextmanager
def log_operation(operation_name: str, **extra_fields):
    """Log the start and outcome of a block, with ``extra_fields`` attached."""
    logger = _child_logger("operations")
    fields = {"operation": operation_name, **extra_fields}
    started = time.perf_counter()
    logger.debug(f"Starting operation: {operation_name}", extra={"extra_fields": {**fields, "status": "started"}})

    try:
        yield
    except Exception as e:
        fields.update(status="failed", duration=time.perf_counter() - started, **_error_fields(e))
        logger.error(f"Failed operation: {operation_name} - {e}", extra={"extra_fields": fields})
        raise

    fields.update(status="completed", duration=time.perf_counter() - started)
    logger.info(f"Completed operation: {operation_name} in {fields['duration']:.3f}s", extra={"extra_fields": fields})


HookCallback = Callable[..., None]


class ObservabilityHooks:
    """Registry of callbacks keyed by store event type.

    Hooks run after the change has been persisted. An exception raised by
    a hook is logged and the remaining hooks still run.
    """

    def __init__(self):
        self.hooks: DefaultDict[str, List[HookCallback]] = defaultdict(list)
        self.logger = _child_logger("observability")

    def register_hook(self, event_type: str, callback: HookCallback) -> None:
        self.hooks[event_type].append(callback)
        self.logger.debug(f"Hook registered for {event_type}")

    def unregister_hook(self, event_type: str, callback: HookCallback) -> None:
        callbacks = self.hooks.get(event_type)
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    def trigger_hooks(self, event_type: str, **data) -> None:
        for hook in list(self.hooks.get(event_type, ())):
            try:
                hook(**data)
            except Exception as e:
                self.logger.error(f"Hook {getattr(hook, '__name__', hook)!s} failed on {event_type}: {e}")

    def log_store_event(self, event_type: str, area_id: Optional[str] = None, **data) -> None:
        """Log one store event and pass its payload to the matching hooks."""
        payload = {"timestamp": _utc_now(), "area_id": area_id, **data}
        self.logger.info(f"Store event: {event_type}", extra={"extra_fields": {"event_type": event_type, **payload}})
        self.trigger_hooks(event_type, **payload)


observability_hooks = ObservabilityHooks()


def log_entity_event(event_type: str, entity_kind: str, area_id: Optional[str], **extra_fields):
    """Emit ``<entity_kind>_<event_type>``, e.g. ``sub_area_deleted``."""
    observability_hooks.log_store_event(
        f"{entity_kind}_{event_type.lower()}",
        area_id=area_id,
        entity_kind=entity_kind,
        **extra_fields,
    )


def log_entity_added(entity_kind: str, area_id: str, entity_id: str, name: str, **extra_fields):
    log_entity_event("added", entity_kind, area_id, entity_id=entity_id, name=name, **extra_fields)


def log_entity_updated(entity_kind: str, area_id: str, entity_id: str, **extra_fields):
    log_entity_event("updated", entity_kind, area_id, entity_id=entity_id, **extra_fields)


def log_entity_deleted(entity_kind: str, area_id: str, entity_id: str, **extra_fields):
    log_entity_event("deleted", entity_kind, area_id, entity_id=entity_id, **extra_fields)


def log_status_changed(area_id: str, process_id: str, old_status: str, new_status: str, **extra_fields):
    log_entity_event(
        "status_changed",
        "process",
        area_id,
        entity_id=process_id,
        old_status=old_status,
        new_status=new_status,
        **extra_fields,
    )


def log_export_completed(path: Optional[str], sheet_count: int, row_count: int, **extra_fields):
    observability_hooks.log_store_event(
        "export_completed",
        path=path,
        sheet_count=sheet_count,
        row_count=row_count,
        **extra_fields,
    )


def log_error_with_context(error: Exception, context: Dict[str, Any], **extra_fields):
    """Log ``error`` with its traceback and the caller's context dict."""
    operation = context.get("operation", "unknown operation")
    _child_logger("errors").error(
        f"Error in {operation}: {error}",
        extra={"extra_fields": {"timestamp": _utc_now(), "context": context, **_error_fields(error), **extra_fields}},
        exc_info=(type(error), error, error.__traceback__),
    )
