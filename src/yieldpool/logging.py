"""Structured logging setup with request_id/trace_id/ledger-context support.

Two output formats are supported, controlled by the ``LOG_FORMAT`` environment
variable (mapped to ``settings.log_format``):

- ``text`` (default): human-readable console output for local development.
  Format: ``2024-01-01 12:00:00 | INFO     | yieldpool.vault | [req=N/A] [trace=N/A]
           [asset=USDC] [dep=alice] | message``

- ``json``: structured JSON for log aggregators.  Each line is a valid JSON
  object with fields ``timestamp``, ``level``, ``logger``, ``message``,
  ``request_id``, ``trace_id``, ``asset``, ``depositor``, ``operation_id``,
  ``service`` and (on exceptions) ``exc_type``/``exc_value``/``exc_trace``.

Context propagation:
  All ContextVars are asyncio-native, so values set inside a request handler
  follow every log line emitted from that coroutine.

  Request-level vars:
    ``request_id_var``, ``trace_id_var`` - set by the API middleware.

  Ledger-domain vars (set by vault and executor code):
    ``asset_var``        - asset being mutated, e.g. "USDC".
    ``depositor_var``    - depositor identity.
    ``operation_id_var`` - rebalance operation identifier.

  Use ``set_ledger_context()`` / ``clear_ledger_context()`` rather than
  manipulating the ContextVars directly.
"""

import json
import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# ---------------------------------------------------------------------------
# Context variables
# ---------------------------------------------------------------------------

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)

asset_var: ContextVar[str | None] = ContextVar("asset", default=None)
depositor_var: ContextVar[str | None] = ContextVar("depositor", default=None)
operation_id_var: ContextVar[str | None] = ContextVar("operation_id", default=None)

_SERVICE_NAME = "yieldpool"


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

class RequestIDFilter(logging.Filter):
    """Inject request/trace IDs and ledger context into every log record.

    Fields injected onto every ``LogRecord``:
    - ``request_id``   - HTTP request ID or "N/A"
    - ``trace_id``     - distributed trace ID or "N/A"
    - ``asset``        - active asset (empty string when not set)
    - ``depositor``    - active depositor (empty string when not set)
    - ``operation_id`` - active rebalance operation (empty string when not set)
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "N/A"
        record.trace_id = trace_id_var.get() or "N/A"
        record.asset = asset_var.get() or ""
        record.depositor = depositor_var.get() or ""
        record.operation_id = operation_id_var.get() or ""
        return True


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

class JSONFormatter(logging.Formatter):
    """Emit one JSON object per log line.

    Ledger-context fields are empty strings (not "N/A") when absent so that
    aggregators can filter them with ``asset != ""``.  Non-serialisable values
    are coerced with ``default=str``.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=UTC).isoformat()

        payload: dict[str, Any] = {
            "timestamp": ts,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "N/A"),
            "trace_id": getattr(record, "trace_id", "N/A"),
            "asset": getattr(record, "asset", ""),
            "depositor": getattr(record, "depositor", ""),
            "operation_id": getattr(record, "operation_id", ""),
            "service": _SERVICE_NAME,
        }

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            payload["exc_type"] = exc_type.__name__ if exc_type else None
            payload["exc_value"] = str(exc_value)
            payload["exc_trace"] = traceback.format_exception(exc_type, exc_value, exc_tb)

        return json.dumps(payload, default=str)


class _LedgerTextFormatter(logging.Formatter):
    """Human-readable text formatter that conditionally appends ledger context.

    Base format::

        2024-01-01 12:00:00 | INFO     | yieldpool.vault | [req=N/A] [trace=N/A] | message

    Empty context fields are omitted, so there is no ``[asset=]`` clutter on
    lines emitted outside a ledger operation.
    """

    _BASE_FMT = (
        "%(asctime)s | %(levelname)-8s | %(name)s "
        "| [req=%(request_id)s] [trace=%(trace_id)s]"
    )
    _DATE_FMT = "%Y-%m-%d %H:%M:%S"

    def __init__(self) -> None:
        super().__init__(fmt=self._BASE_FMT, datefmt=self._DATE_FMT)

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        tokens: list[str] = []
        asset = getattr(record, "asset", "")
        depositor = getattr(record, "depositor", "")
        op_id = getattr(record, "operation_id", "")
        if asset:
            tokens.append(f"[asset={asset}]")
        if depositor:
            tokens.append(f"[dep={depositor}]")
        if op_id:
            tokens.append(f"[op={op_id[:12]}]")

        ledger_part = (" " + " ".join(tokens)) if tokens else ""
        return f"{base}{ledger_part} | {record.getMessage()}"


# ---------------------------------------------------------------------------
# Public setup function
# ---------------------------------------------------------------------------

def setup_logging() -> None:
    """Configure application logging based on ``settings.log_format``.

    Call once at process startup.  Calling multiple times is safe: a handler is
    only added when the root logger has none.
    """
    from yieldpool.config import settings as _settings

    log_level_str = _settings.log_level.upper()
    log_format = _settings.log_format.lower()
    log_level = getattr(logging, log_level_str, logging.INFO)

    root_logger = logging.getLogger()

    if root_logger.handlers:
        root_logger.setLevel(log_level)
        return

    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.addFilter(RequestIDFilter())

    if log_format == "json":
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(_LedgerTextFormatter())

    root_logger.addHandler(console_handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging initialised (level=%s, format=%s)", log_level_str, log_format
    )


# ---------------------------------------------------------------------------
# Context helpers
# ---------------------------------------------------------------------------

def set_request_id(request_id: str | None) -> None:
    """Set request_id in the current async context."""
    request_id_var.set(request_id)


def set_trace_id(trace_id: str | None) -> None:
    """Set trace_id in the current async context."""
    trace_id_var.set(trace_id)


def get_request_id() -> str | None:
    """Get current request_id from the async context."""
    return request_id_var.get()


def generate_request_id() -> str:
    """Generate a new UUID4 request_id."""
    return str(uuid.uuid4())


def set_ledger_context(
    asset: str | None = None,
    depositor: str | None = None,
    operation_id: str | None = None,
) -> None:
    """Bind ledger context into the current async context.

    Only the explicitly passed arguments are updated; omitted keyword arguments
    leave the corresponding ContextVar unchanged::

        set_ledger_context(asset="USDC", depositor="alice")
        try:
            ...  # all logging here carries asset + depositor
        finally:
            clear_ledger_context()
    """
    if asset is not None:
        asset_var.set(asset)
    if depositor is not None:
        depositor_var.set(depositor)
    if operation_id is not None:
        operation_id_var.set(operation_id)


def clear_ledger_context() -> None:
    """Clear all ledger-domain ContextVars in the current context."""
    asset_var.set(None)
    depositor_var.set(None)
    operation_id_var.set(None)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

def get_logger(name: str) -> logging.Logger:
    """Return a standard ``logging.Logger`` for the given module name."""
    return logging.getLogger(name)


def log_exception(
    logger: logging.Logger,
    exc: Exception,
    context: dict[str, Any] | None = None,
) -> None:
    """Log an exception with optional structured context."""
    context_str = f" | context={context}" if context else ""
    logger.error("Exception: %s%s", exc, context_str, exc_info=True)
