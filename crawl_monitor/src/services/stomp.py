"""Minimal STOMP 1.2 framing for text WebSocket transports.

Only what a subscriber needs: building CONNECT, SUBSCRIBE and DISCONNECT frames
and parsing the CONNECTED, MESSAGE, RECEIPT and ERROR frames a broker sends back.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

NULL = "\x00"

_ESCAPES = {"\\": "\\\\", "\n": "\\n", ":": "\\c", "\r": "\\r"}
_UNESCAPES = {"\\\\": "\\", "\\n": "\n", "\\c": ":", "\\r": "\r"}

# CONNECT and CONNECTED headers are never escaped (STOMP 1.2, "Value Encoding")
_UNESCAPED_COMMANDS = {"CONNECT", "CONNECTED"}


class StompProtocolError(ValueError):
    """A frame could not be parsed."""


@dataclass
class StompFrame:
    """One STOMP frame."""

    command: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""


def _escape(value: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def _unescape(value: str) -> str:
    out = []
    i = 0
    while i < len(value):
        if value[i] == "\\":
            pair = value[i : i + 2]
            if pair not in _UNESCAPES:
                raise StompProtocolError(f"Invalid header escape {pair!r}")
            out.append(_UNESCAPES[pair])
            i += 2
        else:
            out.append(value[i])
            i += 1
    return "".join(out)


def encode_frame(command: str, headers: Optional[Dict[str, str]] = None, body: str = "") -> str:
    """Serialize a frame, NULL terminator included."""
    lines = [command]
    for key, value in (headers or {}).items():
        if command in _UNESCAPED_COMMANDS:
            lines.append(f"{key}:{value}")
        else:
            lines.append(f"{_escape(key)}:{_escape(str(value))}")
    return "\n".join(lines) + "\n\n" + body + NULL


def connect_frame(host: str, heartbeat: str = "0,0") -> str:
    return encode_frame(
        "CONNECT",
        {"accept-version": "1.2,1.1", "host": host, "heart-beat": heartbeat},
    )


def subscribe_frame(destination: str, subscription_id: str = "sub-0") -> str:
    return encode_frame(
        "SUBSCRIBE",
        {"id": subscription_id, "destination": destination, "ack": "auto"},
    )


def disconnect_frame(receipt: Optional[str] = None) -> str:
    return encode_frame("DISCONNECT", {"receipt": receipt} if receipt else {})


def parse_frame(text: str) -> Optional[StompFrame]:
    """Parse one frame.

    Returns:
        The frame, or None for a heart-beat (a payload of bare EOLs)

    Raises:
        StompProtocolError: If the text is not a well-formed frame
    """
    text = text.lstrip("\r\n")
    if not text or text == NULL:
        return None

    head, sep, rest = text.partition("\n\n")
    if not sep:
        head, sep, rest = text.partition("\r\n\r\n")
    if not sep:
        raise StompProtocolError("Frame has no header terminator")

    lines = head.replace("\r\n", "\n").split("\n")
    command = lines[0].strip()
    if not command:
        raise StompProtocolError("Frame has no command")

    headers: Dict[str, str] = {}
    for line in lines[1:]:
        key, colon, value = line.partition(":")
        if not colon:
            raise StompProtocolError(f"Malformed header line {line!r}")
        if command not in _UNESCAPED_COMMANDS:
            key, value = _unescape(key), _unescape(value)
        # Repeated headers: the first occurrence wins
        headers.setdefault(key, value)

    length = headers.get("content-length")
    if length is not None and length.isdigit():
        # content-length counts UTF-8 octets, not characters
        body = rest.encode("utf-8")[: int(length)].decode("utf-8", errors="replace")
    else:
        body = rest.split(NULL, 1)[0]

    return StompFrame(command=command, headers=headers, body=body)


def parse_frames(text: str) -> List[StompFrame]:
    """Parse every frame in a transport message (brokers may batch them)."""
    frames = []
    for chunk in text.split(NULL):
        frame = parse_frame(chunk + NULL) if chunk.strip("\r\n") else None
        if frame is not None:
            frames.append(frame)
    return frames
