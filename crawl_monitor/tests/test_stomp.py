"""Tests for STOMP framing."""
import json

import pytest

from src.services import stomp


class TestEncoding:
    """Tests for outgoing frames."""

    def test_connect_frame(self):
        """Test CONNECT negotiates 1.2 and disables heart-beats."""
        frame = stomp.connect_frame("localhost")
        assert frame.startswith("CONNECT\n")
        assert "accept-version:1.2,1.1\n" in frame
        assert "host:localhost\n" in frame
        assert "heart-beat:0,0\n" in frame
        assert frame.endswith("\n\n\x00")

    def test_subscribe_frame(self):
        """Test SUBSCRIBE carries the destination."""
        frame = stomp.parse_frame(stomp.subscribe_frame("/topic/crawler/1/progress", "sub-7"))
        assert frame.command == "SUBSCRIBE"
        assert frame.headers["destination"] == "/topic/crawler/1/progress"
        assert frame.headers["id"] == "sub-7"

    def test_header_values_escaped(self):
        """Test that colons and newlines in header values are escaped."""
        text = stomp.encode_frame("SEND", {"note": "a:b\nc"}, "body")
        assert "note:a\\cb\\nc\n" in text
        assert stomp.parse_frame(text).headers["note"] == "a:b\nc"

    def test_disconnect_receipt(self):
        """Test DISCONNECT with and without a receipt."""
        assert stomp.disconnect_frame() == "DISCONNECT\n\n\x00"
        assert "receipt:77" in stomp.disconnect_frame("77")


class TestParsing:
    """Tests for incoming frames."""

    def test_message_frame(self):
        """Test a MESSAGE frame from the broker."""
        text = (
            "MESSAGE\n"
            "destination:/topic/crawler/1/progress\n"
            "content-type:application/json\n"
            "subscription:sub-0\n"
            "message-id:abc-1\n"
            "\n"
            '{"type":"LOG","data":{"message":"hi"}}\x00'
        )
        frame = stomp.parse_frame(text)
        assert frame.command == "MESSAGE"
        assert frame.headers["subscription"] == "sub-0"
        assert frame.body == '{"type":"LOG","data":{"message":"hi"}}'

    def test_heartbeat_is_none(self):
        """Test that a bare EOL is a heart-beat."""
        assert stomp.parse_frame("\n") is None
        assert stomp.parse_frames("\n") == []

    def test_content_length(self):
        """Test that content-length bounds the body."""
        frame = stomp.parse_frame("MESSAGE\ncontent-length:3\n\nabcdef\x00")
        assert frame.body == "abc"

    def test_content_length_counts_bytes(self):
        """Test a multi-byte UTF-8 body whose content-length is in octets."""
        body = '{"type":"LOG","data":{"message":"Café crawled"}}'
        text = f"MESSAGE\ncontent-length:{len(body.encode('utf-8'))}\n\n{body}\x00"

        frames = stomp.parse_frames(text)

        assert len(frames) == 1
        assert frames[0].body == body
        assert json.loads(frames[0].body)["data"]["message"] == "Café crawled"

    def test_crlf_line_endings(self):
        """Test frames using CRLF."""
        frame = stomp.parse_frame("CONNECTED\r\nversion:1.2\r\n\r\n\x00")
        assert frame.command == "CONNECTED"
        assert frame.headers["version"] == "1.2"

    def test_repeated_header_first_wins(self):
        """Test that the first occurrence of a repeated header is kept."""
        frame = stomp.parse_frame("MESSAGE\nfoo:1\nfoo:2\n\n\x00")
        assert frame.headers["foo"] == "1"

    def test_batched_frames(self):
        """Test several frames in one transport message."""
        text = "CONNECTED\nversion:1.2\n\n\x00\nMESSAGE\ndestination:/t\n\n{}\x00"
        frames = stomp.parse_frames(text)
        assert [f.command for f in frames] == ["CONNECTED", "MESSAGE"]
        assert frames[1].body == "{}"

    @pytest.mark.parametrize(
        "text",
        ["MESSAGE\ndestination:/t", "MESSAGE\nnocolon\n\n\x00", "MESSAGE\nbad:\\x\n\n\x00"],
    )
    def test_malformed(self, text):
        """Test malformed frames raise StompProtocolError."""
        with pytest.raises(stomp.StompProtocolError):
            stomp.parse_frame(text)
