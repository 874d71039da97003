"""Unit tests for logging setup."""

import logging

import pytest

from utils.logger import ROOT_LOGGER_NAME, get_logger, setup_logging


@pytest.fixture
def root_logger():
    root = logging.getLogger(ROOT_LOGGER_NAME)
    saved = list(root.handlers)
    yield root
    for handler in root.handlers:
        if handler not in saved:
            handler.close()
    root.handlers[:] = saved


@pytest.mark.unit
class TestSetupLogging:
    def test_console_only(self, root_logger):
        assert setup_logging() is None
        streams = [h for h in root_logger.handlers if type(h) is logging.StreamHandler]
        assert len(streams) == 1
        assert streams[0].level == logging.INFO
        assert not any(isinstance(h, logging.FileHandler) for h in root_logger.handlers)

    def test_file_output(self, root_logger, tmp_path):
        log_file = setup_logging(tmp_path / 'logs', console_level=logging.WARNING)
        get_logger('core.layer_record').debug('State change for roads to rv-loaded')
        for handler in root_logger.handlers:
            handler.flush()
        assert log_file.parent == tmp_path / 'logs'
        assert 'layerrec.core.layer_record - DEBUG - State change for roads' in log_file.read_text(encoding='utf-8')

    def test_repeat_call_replaces_handlers(self, root_logger):
        setup_logging()
        setup_logging()
        streams = [h for h in root_logger.handlers if type(h) is logging.StreamHandler]
        assert len(streams) == 1
        assert any(isinstance(h, logging.NullHandler) for h in root_logger.handlers)


@pytest.mark.unit
class TestGetLogger:
    def test_nested_under_root(self):
        assert get_logger('core.events').name == 'layerrec.core.events'
