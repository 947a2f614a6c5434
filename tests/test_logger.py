import logging
import logging.handlers

import pytest
import structlog

from conduit.utils import get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    package_logger = logging.getLogger("conduit")
    yield
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
    structlog.reset_defaults()


def test_setup_configures_only_package_logger():
    root_handlers = list(logging.getLogger().handlers)

    package_logger = setup_logging(log_level="info")

    assert package_logger.name == "conduit"
    assert package_logger.level == logging.INFO
    assert not package_logger.propagate
    assert len(package_logger.handlers) == 1
    assert logging.getLogger().handlers == root_handlers


def test_setup_again_replaces_handlers(tmp_path):
    setup_logging(log_file=str(tmp_path / "a.log"))
    package_logger = setup_logging()

    assert len(package_logger.handlers) == 1
    assert not isinstance(package_logger.handlers[0], logging.handlers.RotatingFileHandler)


def test_log_file_receives_namespaced_records(tmp_path):
    log_file = tmp_path / "logs" / "conduit.log"
    setup_logging(log_level="INFO", log_file=str(log_file))

    get_logger("tool").info("connected", id=7)
    get_logger("conduit.client").debug("filtered out")

    text = log_file.read_text()
    assert "conduit.tool" in text
    assert '"event": "connected"' in text
    assert "filtered out" not in text
