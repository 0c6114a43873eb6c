# tests/test_log.py
import logging

import pytest

from peptidefold.log import FoldingLogFormatter, logger, set_verbosity


@pytest.fixture
def restore_level():
  yield
  set_verbosity(logging.DEBUG)


def test_logger_name_and_handler():
  assert logger.name == "peptidefold"
  assert any(isinstance(h.formatter, FoldingLogFormatter) for h in logger.handlers)


def test_set_verbosity(restore_level):
  set_verbosity("warning")
  assert logger.level == logging.WARNING
  assert all(h.level == logging.WARNING for h in logger.handlers)
  set_verbosity(logging.INFO)
  assert logger.level == logging.INFO


def test_set_verbosity_rejects_unknown_level(restore_level):
  with pytest.raises(ValueError):
    set_verbosity("chatty")


def test_formatter_tags_levels():
  formatter = FoldingLogFormatter()
  record = logging.LogRecord("peptidefold", logging.INFO, __file__, 1, "loaded", None, None)
  assert "[*]" in formatter.format(record)
  assert formatter.format(record).endswith("loaded")
  record = logging.LogRecord("peptidefold", logging.WARNING, __file__, 1, "missing", None, None)
  assert "[-]" in formatter.format(record)
