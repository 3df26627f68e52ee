"""Log directory creation and third-party logger levels."""
import logging

from ollaweb.utils.logging import LOG_FILE, QUIET_LOGGERS, setup_logging


def test_creates_missing_log_directory(tmp_path):
    log_dir = tmp_path / 'nested' / 'logs'
    assert setup_logging(log_dir) == log_dir / LOG_FILE
    assert log_dir.is_dir()


def test_noisy_loggers_quieted_outside_debug(tmp_path):
    setup_logging(tmp_path)
    for name in QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING


def test_debug_lets_access_log_through(tmp_path):
    setup_logging(tmp_path, debug=True)
    assert logging.getLogger('werkzeug').level == logging.INFO
