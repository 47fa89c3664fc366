import logging

from utils.logger import PACKAGE_LOGGERS, setup_logger, setup_package_logging


def test_setup_logger_is_idempotent(tmp_path):
    log_file = tmp_path / "logs" / "engine.log"
    first = setup_logger("test.logger.file", level="debug", log_file=str(log_file), to_console=False)
    second = setup_logger("test.logger.file", log_file=str(log_file))
    assert first is second
    assert len(first.handlers) == 1
    assert first.level == logging.DEBUG

    first.info("hello")
    first.handlers[0].flush()
    assert "hello" in log_file.read_text(encoding="utf-8")


def test_setup_logger_without_file():
    logger = setup_logger("test.logger.console", log_file=None)
    assert [type(h) for h in logger.handlers] == [logging.StreamHandler]


def test_package_loggers_share_handlers(tmp_path):
    saved = {name: (list(logging.getLogger(name).handlers), logging.getLogger(name).level) for name in PACKAGE_LOGGERS}
    for name in PACKAGE_LOGGERS:
        logging.getLogger(name).handlers.clear()
    try:
        setup_package_logging(level=logging.WARNING, log_file=str(tmp_path / "pkg.log"), to_console=False)
        setup_package_logging(level=logging.WARNING, log_file=str(tmp_path / "pkg.log"), to_console=False)

        handlers = [logging.getLogger(name).handlers for name in PACKAGE_LOGGERS]
        assert all(len(h) == 1 for h in handlers)
        assert handlers[0][0] is handlers[1][0] is handlers[2][0]
        assert logging.getLogger("modules").level == logging.WARNING
    finally:
        for name in PACKAGE_LOGGERS:
            logger = logging.getLogger(name)
            for handler in logger.handlers:
                handler.close()
            handlers, level = saved[name]
            logger.handlers[:] = handlers
            logger.setLevel(level)
