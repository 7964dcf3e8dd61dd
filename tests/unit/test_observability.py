"""Unit tests for logging, tracing and metrics helpers."""

import io
import logging

import orjson
from prometheus_client import REGISTRY, CollectorRegistry, Histogram
import pytest

from csv_indexer.errors import IOFailure, NotFoundError
from csv_indexer.observability import (
    COMMAND_COUNT,
    JsonFormatter,
    bind_command,
    configure_logging,
    create_span,
    get_trace_context,
    trace_context,
    track_latency,
    write_metrics_textfile,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fresh_trace_context():
    token = trace_context.set(None)
    yield
    trace_context.reset(token)


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("csv_indexer.indexer", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestJsonFormatter:
    def test_includes_trace_ids_and_component(self, fresh_trace_context):
        trace_context.set({"trace_id": "a" * 32, "span_id": "b" * 16})

        entry = orjson.loads(JsonFormatter().format(_record("hello")))

        assert entry["message"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["trace_id"] == "a" * 32
        assert entry["span_id"] == "b" * 16
        assert entry["component"] == "indexer"

    def test_extra_fields_are_redacted_and_serialized(self, fresh_trace_context, tmp_path):
        entry = orjson.loads(JsonFormatter().format(_record("x", token="hunter2", path=tmp_path, tags={"b", "a"})))

        assert entry["token"] == "[REDACTED]"
        assert entry["path"] == str(tmp_path)
        assert entry["tags"] == ["a", "b"]

    def test_bound_command_and_index_are_included(self, fresh_trace_context):
        bind_command("find", "people-index")

        entry = orjson.loads(JsonFormatter().format(_record("x")))

        assert entry["command"] == "find"
        assert entry["index"] == "people-index"
        assert len(entry["trace_id"]) == 32

    def test_long_messages_are_truncated(self, fresh_trace_context):
        entry = orjson.loads(JsonFormatter().format(_record("x" * 5000)))

        assert len(entry["message"]) == JsonFormatter.MAX_MESSAGE_LEN + 3


@pytest.mark.unit
class TestConfigureLogging:
    def test_plain_output_to_given_stream(self, restore_root_logger):
        stream = io.StringIO()
        configure_logging("info", stream=stream)

        logging.getLogger("csv_indexer.test").info("indexed %d rows", 3)

        assert "INFO [csv_indexer.test] indexed 3 rows" in stream.getvalue()

    def test_json_output_and_logger_overrides(self, restore_root_logger):
        stream = io.StringIO()
        configure_logging("warning", json_output=True, logger_levels={"csv_indexer.chatty": "error"}, stream=stream)

        logging.getLogger("csv_indexer.test").warning("careful")
        logging.getLogger("csv_indexer.chatty").warning("suppressed")

        lines = stream.getvalue().splitlines()
        assert len(lines) == 1
        assert orjson.loads(lines[0])["message"] == "careful"

    def test_replaces_existing_handlers(self, restore_root_logger):
        configure_logging("info", stream=io.StringIO())
        configure_logging("info", stream=io.StringIO())

        assert len(logging.getLogger().handlers) == 1


@pytest.mark.unit
class TestTracing:
    def test_span_updates_trace_context(self, fresh_trace_context):
        with create_span("unit.test", attributes={"a": 1, "skipped": None}) as span:
            ctx = get_trace_context()
            expected = format(span.get_span_context().span_id, "016x")

        assert ctx["span_id"] == expected
        assert len(ctx["trace_id"]) == 32

    def test_span_records_failure_and_reraises(self):
        spans = []

        with pytest.raises(NotFoundError), create_span("unit.failure") as span:
            spans.append(span)
            raise NotFoundError("gone")

        assert spans[0].attributes["error.type"] == "NotFoundError"

    def test_none_attributes_are_skipped(self):
        with create_span("unit.attrs", attributes={"index.path": "idx", "search.limit": None}) as span:
            pass

        assert dict(span.attributes) == {"index.path": "idx"}

    def test_trace_context_created_on_demand(self, fresh_trace_context):
        ctx = get_trace_context()

        assert len(ctx["trace_id"]) == 32
        assert get_trace_context() is ctx


@pytest.mark.unit
class TestMetrics:
    def test_track_latency_observes_once(self):
        registry = CollectorRegistry()
        histogram = Histogram("unit_op_seconds", "test", ["operation"], registry=registry)

        with track_latency(histogram, operation="create"):
            pass

        assert registry.get_sample_value("unit_op_seconds_count", {"operation": "create"}) == 1

    def test_command_counter_is_registered_globally(self):
        labels = {"command": "find", "status": "ok"}
        before = REGISTRY.get_sample_value("csv_indexer_commands_total", labels) or 0

        COMMAND_COUNT.labels(**labels).inc()

        assert REGISTRY.get_sample_value("csv_indexer_commands_total", labels) == before + 1

    def test_write_textfile(self, tmp_path):
        target = write_metrics_textfile(tmp_path / "nested" / "csv_indexer.prom")

        assert target.read_text(encoding="utf-8").startswith("#")

    def test_write_textfile_failure_is_io_failure(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")

        with pytest.raises(IOFailure):
            write_metrics_textfile(blocker / "metrics.prom")
