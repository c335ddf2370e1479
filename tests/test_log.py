import io
import logging

from txroll.core.config import LoggingConfig
from txroll.core.log import (
    PACKAGE_LOGGER_NAME,
    configure_logging,
    get_logger,
    stage_logger,
    temp_level,
)


def _stream_handlers(logger):
    return [h for h in logger.handlers if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.NullHandler)]


def test_configure_logging_does_not_stack_handlers():
    name = "txroll.test_stack"
    first = io.StringIO()
    logger = configure_logging(level="DEBUG", stream=first, logger_name=name)
    configure_logging(level="INFO", stream=io.StringIO(), logger_name=name)

    assert len(_stream_handlers(logger)) == 1
    assert logger.level == logging.INFO
    logger.info("hello")
    assert "hello" in first.getvalue()


def test_closed_stream_is_replaced():
    name = "txroll.test_closed"
    old = io.StringIO()
    logger = configure_logging(stream=old, logger_name=name)
    old.close()
    new = io.StringIO()
    configure_logging(stream=new, logger_name=name)

    logger.warning("still logging")
    assert "still logging" in new.getvalue()


def test_stage_logger_prefixes_job_and_stage(caplog):
    logger = get_logger("txroll.test_stage")
    with caplog.at_level(logging.INFO, logger=PACKAGE_LOGGER_NAME):
        stage_logger(logger, "client-risk", "client_scores").info("scored %d clients", 3)

    messages = [r.getMessage() for r in caplog.records if r.name == "txroll.test_stage"]
    assert messages == ["[client-risk/client_scores] scored 3 clients"]


def test_temp_level_restores_previous_level():
    logger = get_logger("txroll.test_temp")
    logger.setLevel(logging.WARNING)
    with temp_level("DEBUG", name="txroll.test_temp") as active:
        assert active.level == logging.DEBUG
    assert logger.level == logging.WARNING


def test_logging_config_apply_uses_format():
    stream_name = "txroll.test_apply"
    cfg = LoggingConfig(level="WARNING", fmt="%(levelname)s|%(message)s", logger_name=stream_name)
    cfg.apply()
    logger = get_logger(stream_name)
    assert logger.level == logging.WARNING
    assert logger.propagate is False
    handler = _stream_handlers(logger)[0]
    assert handler.formatter._fmt == "%(levelname)s|%(message)s"
