"""Tests for configuration, wire models and event decoding."""
from datetime import datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from src.config import Settings
from src.exceptions import EventDecodeError, UnknownEventError, ValidationError
from src.models import (
    AggregateState,
    CrawlCompleted,
    CrawlConfig,
    CrawlStatusResponse,
    DataExtracted,
    ExportFormat,
    ExportRequest,
    LogEntry,
    Metrics,
    PageDiscovered,
    SelectorType,
    SessionStatus,
    decode_event,
    parse_event,
)
from src.services.session_controller import validate_config


class TestCrawlConfig:
    """Tests for crawl configuration validation."""

    def test_valid_config(self, valid_config):
        """Test a valid camelCase configuration."""
        config = validate_config(valid_config)
        assert config.start_url == "https://example.com"
        assert config.max_depth == 2
        assert config.concurrent_threads == 4
        assert config.download_files is True
        assert config.enable_java_script is False

    def test_zero_means_unbounded(self, valid_config):
        """Test that 0 depth and 0 pages are accepted as unbounded."""
        config = validate_config({**valid_config, "maxDepth": 0, "maxPages": 0})
        assert config.unbounded_depth
        assert config.unbounded_pages

    @pytest.mark.parametrize(
        "field,value",
        [
            ("maxDepth", 51),
            ("maxDepth", -1),
            ("maxPages", 10001),
            ("requestDelay", -0.1),
            ("concurrentThreads", 0),
            ("concurrentThreads", 21),
        ],
    )
    def test_out_of_range_rejected(self, valid_config, field, value):
        """Test range limits on numeric fields."""
        with pytest.raises(ValidationError) as exc_info:
            validate_config({**valid_config, field: value})
        assert exc_info.value.errors

    def test_blank_start_url_rejected(self, valid_config):
        """Test that a whitespace-only start URL is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            validate_config({**valid_config, "startUrl": "   "})
        assert "startUrl" in str(exc_info.value)

    def test_missing_start_url_rejected(self):
        """Test that the start URL is required."""
        with pytest.raises(ValidationError):
            validate_config({"maxDepth": 1})

    def test_config_instance_is_revalidated(self):
        """Test that an unvalidated instance does not slip through."""
        config = CrawlConfig.model_construct(start_url="https://a", max_depth=99)
        with pytest.raises(ValidationError):
            validate_config(config)

    def test_unsupported_type_rejected(self):
        """Test a config that is neither a model nor a mapping."""
        with pytest.raises(ValidationError):
            validate_config(["https://example.com"])

    def test_wire_format_is_camel_case(self, valid_config):
        """Test the body sent to the start endpoint."""
        config = validate_config(
            {
                **valid_config,
                "enableJavaScript": True,
                "cookies": {"JSESSIONID": "abc"},
                "extractionRules": [
                    {"ruleName": "Titles", "selectorType": "xpath", "selectorValue": "//h1"}
                ],
            }
        )
        wire = config.to_wire()

        assert wire["startUrl"] == "https://example.com"
        assert wire["enableJavaScript"] is True
        assert wire["cookies"] == {"JSESSIONID": "abc"}
        assert wire["extractionRules"] == [
            {
                "ruleName": "Titles",
                "selectorType": "XPATH",
                "selectorValue": "//h1",
                "attributeToExtract": "text",
            }
        ]
        assert config.extraction_rules[0].selector_type == SelectorType.XPATH

    def test_blank_rule_selector_rejected(self, valid_config):
        """Test that extraction rules need a selector."""
        with pytest.raises(ValidationError):
            validate_config(
                {
                    **valid_config,
                    "extractionRules": [{"ruleName": "Titles", "selectorValue": " "}],
                }
            )


class TestExportAndResponses:
    """Tests for export requests and control responses."""

    def test_export_formats_uppercased(self):
        """Test that lowercase format names are accepted."""
        request = ExportRequest(formats=["json", "csv"])
        assert request.formats == [ExportFormat.JSON, ExportFormat.CSV]
        assert request.to_wire()["includeExtractedData"] is True

    def test_export_needs_a_format(self):
        """Test that an empty format list is rejected."""
        with pytest.raises(PydanticValidationError):
            ExportRequest(formats=[])

    def test_numeric_session_id_coerced(self):
        """Test that numeric server ids become strings."""
        response = CrawlStatusResponse.model_validate(
            {"sessionId": 7, "status": "RUNNING", "totalPages": 3}
        )
        assert response.session_id == "7"
        assert response.total_pages == 3


class TestEventDecoding:
    """Tests for turning envelopes into typed events."""

    def test_parse_page_discovered(self):
        """Test a camelCase payload."""
        event = parse_event(
            {"type": "PAGE_DISCOVERED", "data": {"url": "https://a", "depth": 1, "totalPages": 5}}
        )
        assert isinstance(event, PageDiscovered)
        assert event.total_pages == 5
        assert event.depth == 1

    def test_extra_fields_ignored(self):
        """Test that unknown payload fields do not break decoding."""
        event = parse_event(
            {
                "type": "METRICS",
                "data": {"pagesPerSecond": 1.5, "queueSize": 3, "activeThreads": 2, "cpu": 9},
            }
        )
        assert isinstance(event, Metrics)
        assert event.active_threads == 2

    def test_missing_data_for_completion(self):
        """Test that CRAWL_COMPLETED needs no payload."""
        event = parse_event({"type": "CRAWL_COMPLETED", "data": None})
        assert isinstance(event, CrawlCompleted)

    def test_jackson_timestamp_array(self):
        """Test a LocalDateTime serialized as an array."""
        event = parse_event(
            {
                "type": "DATA_EXTRACTED",
                "data": {"ruleName": "Titles", "count": 2},
                "timestamp": [2024, 3, 1, 10, 20, 30, 500000000],
            }
        )
        assert isinstance(event, DataExtracted)
        assert event.timestamp == datetime(2024, 3, 1, 10, 20, 30, 500000)

    def test_unknown_kind(self):
        """Test that an unknown type raises UnknownEventError."""
        with pytest.raises(UnknownEventError) as exc_info:
            parse_event({"type": "SOMETHING_NEW", "data": {}})
        assert exc_info.value.kind == "SOMETHING_NEW"

    @pytest.mark.parametrize(
        "envelope",
        [
            {"type": "PAGE_DISCOVERED", "data": {"url": "https://a"}},
            {"type": "DATA_EXTRACTED", "data": {"ruleName": "x", "count": -1}},
            {"type": "METRICS", "data": "fast"},
            ["PAGE_DISCOVERED"],
        ],
    )
    def test_malformed_payload(self, envelope):
        """Test that malformed envelopes raise EventDecodeError."""
        with pytest.raises(EventDecodeError):
            parse_event(envelope)

    def test_decode_invalid_json(self):
        """Test that non-JSON text raises EventDecodeError."""
        with pytest.raises(EventDecodeError):
            decode_event("{not json")

    def test_events_are_immutable(self):
        """Test that events cannot be changed after decoding."""
        event = decode_event('{"type": "CRAWL_ERROR", "data": {"error": "boom"}}')
        with pytest.raises(PydanticValidationError):
            event.error = "other"


class TestStateAndSettings:
    """Tests for aggregate state helpers and settings."""

    def test_with_log_truncates(self):
        """Test prepend-and-evict."""
        state = AggregateState()
        for i in range(4):
            state = state.with_log(LogEntry.create("info", str(i)), capacity=2)
        assert [e.message for e in state.log_buffer] == ["3", "2"]
        assert state.log_buffer[0].level == "INFO"

    def test_terminal_statuses(self):
        """Test which statuses are terminal."""
        assert SessionStatus.COMPLETED.is_terminal
        assert SessionStatus.STOPPED.is_terminal
        assert SessionStatus.FAILED.is_terminal
        assert not SessionStatus.PAUSED.is_terminal
        assert not SessionStatus.IDLE.is_terminal

    def test_activity_log_on_by_default(self):
        """Test that per-event activity lines are written unless turned off."""
        assert Settings.model_fields["activity_log"].default is True

    def test_channel_url(self):
        """Test per-protocol WebSocket URLs."""
        settings = Settings(ws_url="ws://host:8080/ws/websocket")
        assert settings.channel_url("9", "stomp") == "ws://host:8080/ws/websocket"
        assert settings.channel_url("9", "json") == "ws://host:8080/ws/websocket/9"
        assert Settings(ws_url="ws://h/ws/{session_id}").channel_url("9") == "ws://h/ws/9"
        assert settings.topic("9") == "/topic/crawler/9/progress"
