import logging

import pytest

from seqproc.utils.log import Rlogger, call, format_value


def test_singleton():
    assert Rlogger() is Rlogger()
    assert Rlogger().get_logger().name == "seqproc"


def test_custom_levels():
    logger = Rlogger().get_logger()
    assert logging.getLevelName(19) == "IO"
    assert logging.getLevelName(18) == "STEP"
    assert hasattr(logger, "io") and hasattr(logger, "step")


def test_set_level():
    rlogger = Rlogger()
    try:
        rlogger.set_level("DEBUG")
        assert rlogger.get_logger().level == logging.DEBUG
        with pytest.raises(ValueError):
            rlogger.set_level("CHATTY")
    finally:
        rlogger.set_level("INFO")


def test_call_passes_through():
    @call
    def add(a, b=2):
        return a + b

    rlogger = Rlogger()
    try:
        rlogger.set_level("DEBUG")
        assert add(1) == 3
    finally:
        rlogger.set_level("INFO")
    assert add.__name__ == "add"


def test_file_logging(tmp_path):
    rlogger = Rlogger()
    path = tmp_path / "logs" / "run.log"
    rlogger.enable_file_logging(path)
    try:
        rlogger.get_logger().info("written to file")
    finally:
        rlogger.disable_file_logging()
    assert "written to file" in path.read_text()
    assert rlogger.file_handler is None


def test_file_logging_level(tmp_path):
    rlogger = Rlogger()
    with pytest.raises(ValueError):
        rlogger.enable_file_logging(tmp_path / "run.log", level="CHATTY")
    assert rlogger.file_handler is None


def test_format_value_shortens_lists():
    assert format_value(list(range(100))) == "list(len=100, head=[0, 1, 2, 3, 4])"
    assert format_value("abc") == "'abc'"
