"""Tests for shared.log and shared.logging_config."""

import json
import logging

import pytest

from shared.log import TRACE, create_logger
from shared.logging_config import configure_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def test_create_logger_names_component(caplog):
    _, _, log_info, _, _ = create_logger("Cache Store")
    with caplog.at_level(logging.INFO):
        log_info("hello")
    assert caplog.records[-1].name == "AnyListNotify.CacheStore"


def test_create_logger_root_name(caplog):
    _, _, _, log_warn, _ = create_logger()
    with caplog.at_level(logging.WARNING):
        log_warn("careful")
    assert caplog.records[-1].name == "AnyListNotify"
    assert caplog.records[-1].levelno == logging.WARNING


def test_trace_level(caplog):
    log_trace, *_ = create_logger("Test")
    with caplog.at_level(TRACE):
        log_trace("fine detail")
    assert caplog.records[-1].levelname == "TRACE"


def test_configure_logging_json(restore_root_logger, capsys):
    configure_logging("info", "json")
    logging.getLogger("AnyListNotify.Test").info("structured")

    line = capsys.readouterr().err.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["msg"] == "structured"
    assert record["level"] == "INFO"
    assert record["name"] == "AnyListNotify.Test"
    assert "ts" in record


def test_configure_logging_text(restore_root_logger, capsys):
    configure_logging("debug", "text")
    logging.getLogger("AnyListNotify.Test").debug("plain")

    assert "DEBUG AnyListNotify.Test: plain" in capsys.readouterr().err


def test_configure_logging_levels(restore_root_logger):
    configure_logging("trace")
    assert restore_root_logger.level == TRACE

    configure_logging("warning")
    assert restore_root_logger.level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING

    configure_logging("bogus")
    assert restore_root_logger.level == logging.INFO
