import io
import typing as t

import pytest

from tracelog import HostFacts, TraceLogger
from tracelog.config import get_settings

TEST_HOST = HostFacts(host_name="test-host", ip_address="10.0.0.7")


class CapturedLogger(t.NamedTuple):
    logger: TraceLogger
    stdout: io.StringIO
    stderr: io.StringIO

    def out_lines(self) -> list[str]:
        return self.stdout.getvalue().splitlines()

    def err_lines(self) -> list[str]:
        return self.stderr.getvalue().splitlines()

    def all_lines(self) -> list[str]:
        return self.out_lines() + self.err_lines()


@pytest.fixture
def make_logger():
    """Factory for loggers whose console streams are in-memory buffers."""
    created: list[TraceLogger] = []

    def _make(mode: t.Any = "console", log_file: t.Any = None, **kwargs: t.Any) -> CapturedLogger:
        stdout, stderr = io.StringIO(), io.StringIO()
        logger = TraceLogger(mode, log_file, stdout=stdout, stderr=stderr, host_facts=TEST_HOST, **kwargs)
        created.append(logger)
        return CapturedLogger(logger, stdout, stderr)

    yield _make

    for logger in created:
        logger.close()


@pytest.fixture
def console(make_logger) -> CapturedLogger:
    return make_logger("console")


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
