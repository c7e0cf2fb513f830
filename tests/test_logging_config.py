import sys

import pytest
from loguru import logger

from stipend_flights.logging_config import console_level, setup_logging


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.configure(extra={})
    logger.add(sys.stderr)


def test_console_level():
    assert console_level(verbose=False, quiet=False) == "INFO"
    assert console_level(verbose=False, quiet=True) == "WARNING"
    assert console_level(verbose=True, quiet=True) == "DEBUG"


def test_console_lines_carry_route(restore_logger, capsys):
    setup_logging()
    logger.info("no route yet")
    with logger.contextualize(route="Seoul → Tokyo"):
        logger.info("pricing")

    err = capsys.readouterr().err
    lines = err.splitlines()
    assert "no route yet" in lines[0]
    assert "Seoul → Tokyo" not in lines[0]
    assert "Seoul → Tokyo" in lines[1]
    assert "pricing" in lines[1]


def test_quiet_hides_info(restore_logger, capsys):
    setup_logging(quiet=True)
    logger.info("progress")
    logger.warning("fallback used")

    err = capsys.readouterr().err
    assert "progress" not in err
    assert "fallback used" in err


def test_log_file_created(restore_logger, tmp_path):
    log_file = tmp_path / "logs" / "run.log"
    setup_logging(log_file=log_file)
    assert log_file.parent.is_dir()
