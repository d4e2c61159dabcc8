"""
Tests for the logging helpers in oscport.utils.message.
"""
import logging
import os

import pytest

from oscport.utils.message import ColorFormatter, Log, init_logger, purge_old_logs


@pytest.fixture
def restore_level():
    level = Log.get_logger().level
    yield
    Log.set_level(level)
    Log.disable_file_logging()


class TestPurgeOldLogs:
    """Tests for log rotation by count."""

    def test_keeps_newest(self, tmp_path):
        names = [f"oscport_2024-01-0{day}_120000.log" for day in range(1, 6)]
        for name in names:
            (tmp_path / name).write_text("")
        (tmp_path / "unrelated.txt").write_text("")

        purge_old_logs(str(tmp_path), keep=2)

        assert sorted(os.listdir(tmp_path)) == sorted(names[-2:] + ["unrelated.txt"])


class TestLog:
    """Tests for the Log facade."""

    def test_set_level_by_name(self, restore_level):
        Log.set_level("debug")
        assert Log.get_logger().level == logging.DEBUG

    def test_unknown_level_name_falls_back_to_info(self, restore_level):
        Log.set_level("chatty")
        assert Log.get_logger().level == logging.INFO

    def test_file_logging(self, tmp_path, restore_level):
        path = Log.enable_file_logging(str(tmp_path / "logs"))
        Log.warning("written to file")
        Log.disable_file_logging()

        assert os.path.dirname(path) == str(tmp_path / "logs")
        with open(path, encoding="utf-8") as f:
            content = f.read()
        assert "WARNING" in content
        assert "written to file" in content

    def test_init_logger_does_not_stack_handlers(self):
        logger = init_logger(name="oscport.test.stack", console_logging=True)
        init_logger(name="oscport.test.stack", console_logging=True)
        assert len(logger.handlers) == 1


class TestColorFormatter:
    """Tests for console formatting."""

    def test_record_is_not_mutated(self):
        record = logging.LogRecord("oscport", logging.ERROR, __file__, 1, "boom", None, None)
        formatter = ColorFormatter(fmt="%(levelname)s %(message)s")

        formatted = formatter.format(record)

        assert "ERROR" in formatted
        assert record.levelname == "ERROR"
