"""Tests for JSONL logging."""

import json
from pathlib import Path

import pytest

from mnemo.logging import JSONLLogger, LogEntry, configure_logger, get_logger


@pytest.fixture
def logger(tmp_path: Path) -> JSONLLogger:
    return JSONLLogger(log_dir=tmp_path)


def read_entries(logger: JSONLLogger) -> list[dict]:
    with open(logger.log_path) as f:
        return [json.loads(line) for line in f]


def test_log_entry_to_dict():
    """LogEntry excludes None values and empty extras."""
    entry = LogEntry(timestamp="2026-01-01T00:00:00Z", event="test")
    data = entry.to_dict()

    assert data == {"timestamp": "2026-01-01T00:00:00Z", "event": "test"}


def test_log_writes_jsonl(logger: JSONLLogger):
    logger.log("event1", chat_id="123")
    logger.log("event2", chat_id="456")

    entries = read_entries(logger)

    assert [e["event"] for e in entries] == ["event1", "event2"]
    assert entries[0]["chat_id"] == "123"


def test_log_turn(logger: JSONLLogger):
    logger.log_turn("7:1", "alice", 42)

    [entry] = read_entries(logger)
    assert entry["event"] == "turn_received"
    assert entry["message_id"] == "7:1"
    assert entry["extra"] == {"author": "alice", "length": 42}


def test_log_immediate(logger: JSONLLogger):
    logger.log_immediate("7:1", True, category="fact", stored=2, duration_ms=12.5)

    [entry] = read_entries(logger)
    assert entry["event"] == "immediate_storage"
    assert entry["category"] == "fact"
    assert entry["duration_ms"] == 12.5
    assert entry["extra"] == {"important": True, "stored": 2}


def test_log_ledger(logger: JSONLLogger):
    logger.log_ledger("7:1", "immediate", "event")

    [entry] = read_entries(logger)
    assert entry["event"] == "ledger_write"
    assert entry["extra"] == {"processing_type": "immediate", "stored_in": "event"}


def test_log_consolidation_failure(logger: JSONLLogger):
    logger.log_consolidation("failed", gathered=3, error="LLM unavailable")

    [entry] = read_entries(logger)
    assert entry["event"] == "consolidation"
    assert entry["error"] == "LLM unavailable"
    assert entry["extra"]["status"] == "failed"
    assert entry["extra"]["gathered"] == 3
    assert entry["extra"]["chunks_stored"] == 0


def test_log_agent_stop(logger: JSONLLogger):
    logger.log_agent_stop("max_turns", chat_id="42", turns=5)

    [entry] = read_entries(logger)
    assert entry["stopped_reason"] == "max_turns"
    assert entry["chat_id"] == "42"
    assert entry["extra"] == {"turns": 5}


def test_non_json_values_are_stringified(logger: JSONLLogger):
    logger.log("custom", path=Path("/tmp/x"))

    [entry] = read_entries(logger)
    assert entry["extra"]["path"] == "/tmp/x"


def test_rotation(tmp_path: Path):
    """Log rotates when max size is exceeded."""
    logger = JSONLLogger(log_dir=tmp_path, max_size_mb=0.001)

    for i in range(100):
        logger.log(f"event_{i}", data="x" * 100)

    assert len(list(tmp_path.glob("events*.jsonl"))) >= 2


def test_configure_logger_replaces_global(tmp_path: Path):
    configured = configure_logger(tmp_path / "custom")

    assert get_logger() is configured
    assert configured.log_dir == tmp_path / "custom"
    assert configured.log_dir.is_dir()
