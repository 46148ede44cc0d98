"""
Logger facade and lifecycle tests.
"""

from __future__ import annotations

import inspect
import io
import itertools
import re
import time
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from tracelog import (
    CarrierKey,
    ConfigurationError,
    FieldCarrier,
    LogLevel,
    SinkClosedError,
    SinkMode,
    StartConfig,
    TraceLogger,
    WsgiRequestAdapter,
)
from tracelog import core
from tracelog.formatters import LEVEL_COLORS, strip_ansi
from tracelog.identity import HostFacts

DURATION = re.compile(r"Duration: (\d+)ms")
TXN = re.compile(r"TxnID: ([^ |]+)")


class TestConstruction:
    def test_mode_defaults_to_console_without_file(self, make_logger) -> None:
        assert make_logger(None).logger.mode is SinkMode.CONSOLE

    def test_mode_defaults_to_both_with_file(self, make_logger, tmp_path) -> None:
        assert make_logger(None, tmp_path / "app.log").logger.mode is SinkMode.BOTH

    @pytest.mark.parametrize("mode", ["file", "both", "all"])
    def test_file_modes_require_path(self, mode: str) -> None:
        with pytest.raises(ConfigurationError):
            TraceLogger(mode)

    def test_unopenable_file_fails_construction(self, tmp_path) -> None:
        with pytest.raises(ConfigurationError):
            TraceLogger("file", tmp_path / "no-such-dir" / "app.log")

    def test_simple_constructor(self, tmp_path) -> None:
        with TraceLogger.simple() as console_only:
            assert console_only.mode is SinkMode.CONSOLE
        with TraceLogger.simple(tmp_path / "app.log") as both:
            assert both.mode is SinkMode.BOTH
        assert both.closed

    def test_host_facts_are_cached(self, console) -> None:
        assert console.logger.host_name == "test-host"
        assert console.logger.ip_address == "10.0.0.7"

    def test_discovered_host_facts_never_empty(self) -> None:
        facts = HostFacts.discover()
        assert facts.host_name
        assert facts.ip_address


class TestSimpleLogging:
    def test_simple_line_captures_call_site(self, console) -> None:
        line_no = inspect.currentframe().f_lineno + 1
        console.logger.info("user %s created", "alice")

        (line,) = console.out_lines()
        plain = strip_ansi(line)
        assert line.startswith(LEVEL_COLORS["INFO"])
        assert "] [INFO] [" in plain
        assert "[test-host@10.0.0.7]" in plain
        assert f"[test_core.py:{line_no}:test_simple_line_captures_call_site]" in plain
        assert plain.endswith("] user alice created")

    def test_message_without_args_is_not_formatted(self, console) -> None:
        console.logger.warning("100% done")
        assert strip_ansi(console.out_lines()[0]).endswith("] 100% done")

    def test_error_routes_to_stderr(self, console) -> None:
        console.logger.errorf("failed: %d", 3)
        assert console.out_lines() == []
        assert strip_ansi(console.err_lines()[0]).endswith("] failed: 3")

    def test_ctx_variant_uses_carrier_id(self, console) -> None:
        carrier = FieldCarrier().with_unique_id("req-42")
        console.logger.success_ctx(carrier, "ok")
        console.logger.infof_ctx(None, "no carrier %s", "here")

        first, second = (strip_ansi(line) for line in console.out_lines())
        assert "[SUCCESS] [req-42]" in first
        assert "[req-42]" not in second
        assert second.endswith("] no carrier here")

    def test_plain_ids_are_fresh_per_call(self, console) -> None:
        console.logger.info("a")
        console.logger.info("b")
        ids = [strip_ansi(line).split("] [")[2] for line in console.out_lines()]
        assert ids[0] != ids[1]


class TestLifecycle:
    def test_start_seeds_carrier(self, console) -> None:
        carrier = console.logger.start(
            None,
            StartConfig(service_name="user-service", endpoint="/api/v1/users", method="POST", trace_id="trace-1"),
        )

        txn = carrier.get(CarrierKey.TRANSACTION_ID)
        assert txn and carrier.get(CarrierKey.UNIQUE_ID) == txn
        assert carrier.get(CarrierKey.SERVICE_NAME) == "user-service"
        assert carrier.get(CarrierKey.TRACE_ID) == "trace-1"
        assert carrier.get_start_time()[1]

        line = strip_ansi(console.out_lines()[0])
        assert "| [INFO] | [START] | Service: user-service | [POST] /api/v1/users |" in line
        assert f"TxnID: {txn} | TraceID: trace-1" in line
        assert "Duration:" not in line
        assert line.endswith("→ Request started")

    def test_supplied_transaction_id_is_reused(self, console) -> None:
        carrier = console.logger.start(None, StartConfig(transaction_id="txn-7", trace_id="txn-7"))
        assert carrier.get(CarrierKey.UNIQUE_ID) == "txn-7"
        line = strip_ansi(console.out_lines()[0])
        assert "TxnID: txn-7" in line
        assert "TraceID:" not in line

    def test_generated_transaction_ids_are_distinct(self, console) -> None:
        ids = {console.logger.start().get(CarrierKey.TRANSACTION_ID) for _ in range(50)}
        assert len(ids) == 50

    def test_start_does_not_mutate_input_carrier(self, console) -> None:
        upstream = FieldCarrier().with_service_name("gateway")
        carrier = console.logger.start(upstream, StartConfig(method="GET"))
        assert carrier.get(CarrierKey.SERVICE_NAME) == "gateway"
        assert upstream.get(CarrierKey.METHOD, "unknown") == "unknown"
        assert upstream.get_start_time() == (None, False)

    def test_start_stop_scenario(self, console) -> None:
        """The documented user-service flow renders a bounded duration"""
        body = '{"user_id":"123"}'
        carrier = console.logger.start(
            None,
            StartConfig(service_name="user-service", method="POST", endpoint="/api/v1/users", body=body),
        )
        time.sleep(0.1)
        console.logger.stop(carrier, "SUCCESS", "Request completed", body)

        start_line, stop_line = (strip_ansi(line) for line in console.out_lines())
        assert f"Body: {body}" in start_line
        assert "[SUCCESS] | [STOP]" in stop_line
        assert "Service: user-service" in stop_line
        assert "[POST] /api/v1/users" in stop_line
        duration = int(DURATION.search(stop_line).group(1))
        assert 90 <= duration < 250
        assert stop_line.endswith("→ Request completed")

    def test_stop_defaults(self, console) -> None:
        carrier = console.logger.start()
        console.logger.stop(carrier)
        stop_line = strip_ansi(console.out_lines()[-1])
        assert "[SUCCESS] | [STOP]" in stop_line
        assert stop_line.endswith("→ Request completed")

    def test_stop_without_start_time_omits_duration(self, console) -> None:
        console.logger.stop(FieldCarrier().with_transaction_id("t"), LogLevel.WARNING, "late")
        line = strip_ansi(console.out_lines()[0])
        assert "[WARNING] | [STOP]" in line
        assert "Duration:" not in line

    def test_start_line_never_shows_duration(self, console, monkeypatch) -> None:
        """START reuses the readings it seeds the carrier with"""
        ticks = itertools.count(start=0, step=5_000_000)
        monkeypatch.setattr(core, "time", SimpleNamespace(monotonic_ns=lambda: next(ticks)))

        console.logger.start(None, StartConfig(service_name="svc"))
        assert "Duration:" not in strip_ansi(console.out_lines()[0])

    def test_duration_ignores_wall_clock_steps(self, console, monkeypatch) -> None:
        """A wall clock moved back an hour still yields the elapsed time"""

        class SteppedClock:
            current = datetime(2024, 11, 3, 1, 30)

            @classmethod
            def now(cls) -> datetime:
                return cls.current

        monkeypatch.setattr(core, "datetime", SteppedClock)
        carrier = console.logger.start()
        time.sleep(0.02)
        SteppedClock.current -= timedelta(hours=1)
        console.logger.stop(carrier)

        stop_line = strip_ansi(console.out_lines()[-1])
        assert "2024-11-03 00:30:00" in stop_line
        duration = int(DURATION.search(stop_line).group(1))
        assert 15 <= duration < 1000

    def test_lowercase_error_level_goes_to_stderr(self, console) -> None:
        console.logger.log_with_body(None, "error", "lowercase")
        assert console.out_lines() == []
        line = console.err_lines()[0]
        assert line.startswith(LEVEL_COLORS["ERROR"])
        assert "| [ERROR] |" in strip_ansi(line)

    def test_stop_twice_emits_twice(self, console) -> None:
        carrier = console.logger.start()
        console.logger.stop(carrier)
        console.logger.stop(carrier)
        assert sum("[STOP]" in line for line in console.out_lines()) == 2

    def test_stop_error_level_goes_to_stderr(self, console) -> None:
        carrier = console.logger.start()
        console.logger.stop(carrier, "ERROR", "boom")
        assert "[ERROR] | [STOP]" in strip_ansi(console.err_lines()[0])

    def test_log_with_body_has_no_flag(self, console) -> None:
        console.logger.log_with_body(None, "INFO", "payload", {"a": 1})
        line = strip_ansi(console.out_lines()[0])
        assert "[START]" not in line and "[STOP]" not in line
        assert 'Body: {"a":1}' in line
        assert "Service: unknown" in line

    def test_start_from_adapter_config_overrides_request(self, console) -> None:
        adapter = WsgiRequestAdapter({"REQUEST_METHOD": "GET", "PATH_INFO": "/orders"}, body=b"payload")
        carrier = console.logger.start_from_adapter(adapter, StartConfig(method="PATCH"))

        assert carrier.get(CarrierKey.METHOD) == "PATCH"
        assert carrier.get(CarrierKey.ENDPOINT) == "/orders"
        line = strip_ansi(console.out_lines()[0])
        assert "[PATCH] /orders" in line
        assert "Body: payload" in line

    def test_start_from_request_accepts_wsgi_environ(self, console) -> None:
        carrier = console.logger.start_from_request({"REQUEST_METHOD": "PUT", "PATH_INFO": "/things/1"})
        assert carrier.get(CarrierKey.METHOD) == "PUT"
        assert "[PUT] /things/1" in strip_ansi(console.out_lines()[0])

    def test_start_from_request_logs_and_replays_wsgi_body(self, console) -> None:
        environ = {
            "REQUEST_METHOD": "POST",
            "PATH_INFO": "/users",
            "CONTENT_LENGTH": "7",
            "wsgi.input": io.BytesIO(b'{"a":1}trailing'),
        }
        console.logger.start_from_request(environ)

        assert 'Body: {"a":1}' in strip_ansi(console.out_lines()[0])
        assert environ["wsgi.input"].read() == b'{"a":1}'

    def test_start_from_request_keeps_explicit_body(self, console) -> None:
        stream = io.BytesIO(b"unread")
        environ = {"REQUEST_METHOD": "POST", "PATH_INFO": "/u", "CONTENT_LENGTH": "6", "wsgi.input": stream}
        console.logger.start_from_request(environ, StartConfig(body="explicit"))

        assert "Body: explicit" in strip_ansi(console.out_lines()[0])
        assert environ["wsgi.input"] is stream and stream.tell() == 0

    def test_start_from_request_rejects_unknown_types(self, console) -> None:
        with pytest.raises(TypeError):
            console.logger.start_from_request(42)


class TestSinkModes:
    def test_file_only_writes_nothing_to_console(self, make_logger, tmp_path) -> None:
        path = tmp_path / "app.log"
        captured = make_logger("file", path)
        captured.logger.info("hello")
        carrier = captured.logger.start(None, StartConfig(service_name="svc"))
        captured.logger.stop(carrier, "ERROR", "failed")
        captured.logger.close()

        assert captured.all_lines() == []
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 3
        assert all("\x1b[" not in line for line in lines)

    def test_file_line_matches_console_line_without_colors(self, make_logger, tmp_path) -> None:
        path = tmp_path / "app.log"
        captured = make_logger("both", path)
        carrier = FieldCarrier().with_unique_id("fixed").with_transaction_id("fixed")
        captured.logger.log_with_body(carrier, "SUCCESS", "done", "body")
        captured.logger.warning_ctx(carrier, "careful")
        captured.logger.close()

        console_lines = captured.out_lines()
        file_lines = path.read_text(encoding="utf-8").splitlines()
        assert [strip_ansi(line) for line in console_lines] == file_lines
        assert console_lines != file_lines

    def test_file_write_after_close_fails_but_console_still_writes(self, make_logger, tmp_path) -> None:
        captured = make_logger("both", tmp_path / "app.log")
        captured.logger.close()
        captured.logger.close()

        with pytest.raises(SinkClosedError):
            captured.logger.info("after close")
        assert strip_ansi(captured.out_lines()[0]).endswith("] after close")

    def test_console_only_survives_close(self, console) -> None:
        console.logger.close()
        console.logger.info("still here")
        assert console.out_lines()

    def test_buffered_logger_flushes_on_close(self, make_logger, tmp_path) -> None:
        path = tmp_path / "app.log"
        captured = make_logger("file", path, buffer_size=64)
        for i in range(10):
            captured.logger.info("line %d", i)
        captured.logger.close()

        lines = path.read_text(encoding="utf-8").splitlines()
        assert [line.rsplit("] ", 1)[1] for line in lines] == [f"line {i}" for i in range(10)]
        assert all("test_buffered_logger_flushes_on_close]" in line for line in lines)
