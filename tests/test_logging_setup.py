from __future__ import annotations

import json

import structlog
from structlog import get_logger

from okxdesk.utils import logging as desk_logging
from okxdesk.utils.logging import configure_logging


def _entries(path) -> list[dict]:
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


def test_configure_logging_writes_json_lines(tmp_path) -> None:
    path = tmp_path / "logs" / "desk.log"
    try:
        configure_logging("info", path)
        logger = get_logger("okxdesk.test")
        logger.debug("hidden")
        logger.info("orders refreshed", inst_id="BTC-USDT", count=2)
        lines = _entries(path)
    finally:
        configure_logging("info", None)
        structlog.reset_defaults()

    assert len(lines) == 1
    entry = lines[0]
    assert entry["event"] == "orders refreshed"
    assert entry["level"] == "info"
    assert entry["inst_id"] == "BTC-USDT"
    assert entry["count"] == 2
    assert "timestamp" in entry


def test_reconfiguring_closes_previous_log_file(tmp_path) -> None:
    try:
        configure_logging("info", tmp_path / "first.log")
        first = desk_logging._stream
        configure_logging("info", tmp_path / "second.log")
        get_logger("okxdesk.test").info("moved")

        assert first is not None and first.closed
        assert _entries(tmp_path / "second.log")[0]["event"] == "moved"
        assert _entries(tmp_path / "first.log") == []
    finally:
        configure_logging("info", None)
        structlog.reset_defaults()
