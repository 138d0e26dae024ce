# restropos/modules/realtime/services/stomp_frames.py

"""
STOMP 1.2 frame codec.

Frames travel as websocket text messages. A message holding only end of
line characters is a heart-beat and decodes to nothing. Header values
are escaped as STOMP 1.2 requires, except in CONNECT and CONNECTED
frames.
"""

from typing import Dict, List, Optional, Union

from restropos.core.exceptions import TransportError

from ..schemas.stomp_schemas import StompFrame

NULL = "\x00"

_ESCAPES = {"\\": "\\\\", "\r": "\\r", "\n": "\\n", ":": "\\c"}
_UNESCAPES = {"\\": "\\", "r": "\r", "n": "\n", "c": ":"}
_UNESCAPED_COMMANDS = ("CONNECT", "CONNECTED")


def _escape(value: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def _unescape(value: str) -> str:
    out = []
    chars = iter(value)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, "")
        if nxt not in _UNESCAPES:
            raise TransportError(f"Invalid STOMP header escape: \\{nxt}")
        out.append(_UNESCAPES[nxt])
    return "".join(out)


def encode_frame(frame: StompFrame) -> str:
    escape = frame.command not in _UNESCAPED_COMMANDS
    lines = [frame.command]
    headers = dict(frame.headers)
    if frame.body and "content-length" not in headers:
        headers["content-length"] = str(len(frame.body.encode("utf-8")))
    for name, value in headers.items():
        if escape:
            name, value = _escape(name), _escape(str(value))
        lines.append(f"{name}:{value}")
    return "\n".join(lines) + "\n\n" + frame.body + NULL


def decode_frame(data: Union[str, bytes]) -> Optional[StompFrame]:
    """
    Decode one frame from a websocket message.

    Returns None for heart-beats. Raises TransportError when the message
    is not a well-formed frame.
    """
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8")
    text = data.lstrip("\r\n")
    if not text or text.strip(NULL + "\r\n") == "":
        return None

    head, sep, rest = text.partition("\n\n")
    if not sep:
        head, sep, rest = text.partition("\r\n\r\n")
    if not sep:
        raise TransportError("Malformed STOMP frame: missing header terminator")

    header_lines = head.replace("\r\n", "\n").split("\n")
    command = header_lines[0].strip()
    if not command:
        raise TransportError("Malformed STOMP frame: missing command")
    escape = command not in _UNESCAPED_COMMANDS

    headers: Dict[str, str] = {}
    for line in header_lines[1:]:
        if not line:
            continue
        name, colon, value = line.partition(":")
        if not colon:
            raise TransportError(f"Malformed STOMP header line: {line!r}")
        if escape:
            name, value = _unescape(name), _unescape(value)
        # Repeated headers: the first occurrence wins
        headers.setdefault(name, value)

    length = headers.get("content-length")
    if length is not None:
        raw = rest.encode("utf-8")
        try:
            size = int(length)
        except ValueError as e:
            raise TransportError(f"Invalid content-length header: {length!r}") from e
        body = raw[:size].decode("utf-8", errors="replace")
    else:
        body = rest.split(NULL, 1)[0]

    return StompFrame(command=command, headers=headers, body=body)


def connect_frame(host: str, token: Optional[str] = None, heartbeat: str = "0,0") -> StompFrame:
    headers = {"accept-version": "1.2", "host": host, "heart-beat": heartbeat}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return StompFrame("CONNECT", headers)


def subscribe_frame(destination: str, subscription_id: str) -> StompFrame:
    return StompFrame(
        "SUBSCRIBE", {"id": subscription_id, "destination": destination, "ack": "auto"}
    )


def unsubscribe_frame(subscription_id: str) -> StompFrame:
    return StompFrame("UNSUBSCRIBE", {"id": subscription_id})


def send_frame(destination: str, body: str) -> StompFrame:
    return StompFrame(
        "SEND", {"destination": destination, "content-type": "application/json"}, body
    )


def disconnect_frame(receipt: Optional[str] = None) -> StompFrame:
    return StompFrame("DISCONNECT", {"receipt": receipt} if receipt else {})


def error_detail(frame: StompFrame) -> str:
    """Readable summary of an ERROR frame"""
    parts: List[str] = []
    if frame.headers.get("message"):
        parts.append(frame.headers["message"])
    if frame.body.strip():
        parts.append(frame.body.strip())
    return ": ".join(parts) or "STOMP error"
