"""Tests for the structured logging module.

Covers:
- JSONFormatter produces valid JSON with request and ledger context
- Text formatter appends ledger context only when it is set
- setup_logging() is idempotent
"""

import io
import json
import logging

from yieldpool.logging import (
    JSONFormatter,
    RequestIDFilter,
    _LedgerTextFormatter,
    clear_ledger_context,
    generate_request_id,
    request_id_var,
    set_ledger_context,
    setup_logging,
)


def _capture_log(formatter: logging.Formatter, message: str) -> str:
    """Emit a single log record through the formatter and return the output."""
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIDFilter())

    logger = logging.getLogger(f"test.{id(stream)}")
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
    logger.propagate = False
    logger.info(message)
    return stream.getvalue()


def test_json_formatter_required_fields() -> None:
    output = _capture_log(JSONFormatter(), "hello")
    parsed = json.loads(output.strip())

    required = {"timestamp", "level", "logger", "message", "request_id", "asset", "service"}
    assert required <= set(parsed)
    assert parsed["service"] == "yieldpool"
    assert parsed["asset"] == ""


def test_json_formatter_carries_ledger_context() -> None:
    rid = generate_request_id()
    token = request_id_var.set(rid)
    set_ledger_context(asset="USDC", depositor="alice", operation_id="abc")
    try:
        parsed = json.loads(_capture_log(JSONFormatter(), "deposit").strip())
    finally:
        clear_ledger_context()
        request_id_var.reset(token)

    assert parsed["request_id"] == rid
    assert (parsed["asset"], parsed["depositor"], parsed["operation_id"]) == ("USDC", "alice", "abc")


def test_text_formatter_omits_empty_context() -> None:
    output = _capture_log(_LedgerTextFormatter(), "plain")
    assert "[asset=" not in output
    assert output.strip().endswith("| plain")


def test_text_formatter_appends_context() -> None:
    set_ledger_context(asset="DAI", depositor="bob")
    try:
        output = _capture_log(_LedgerTextFormatter(), "withdraw")
    finally:
        clear_ledger_context()
    assert "[asset=DAI] [dep=bob]" in output


def test_setup_logging_idempotent() -> None:
    root = logging.getLogger()
    setup_logging()
    count = len(root.handlers)
    setup_logging()
    assert len(root.handlers) == count
