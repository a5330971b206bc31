"""Server-sent event framing shared by the relay and the client decoder.

Every event is a single ``data:`` line followed by a blank line::

    data: {"text": "<fragment>"}
    data: {"error": "<message>"}
    data: [DONE]

No ``id:`` or ``retry:`` fields are sent; a dropped stream cannot be resumed.
"""
import codecs
import json
from dataclasses import dataclass
from typing import Iterator, List, Optional, Union

import structlog

logger = structlog.get_logger()

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class TextFragment:
    text: str


@dataclass(frozen=True)
class Done:
    pass


@dataclass(frozen=True)
class ErrorFrame:
    message: str


StreamFrame = Union[TextFragment, Done, ErrorFrame]


def _sse_format(data: dict) -> str:
    return f"{DATA_PREFIX}{json.dumps(data, ensure_ascii=False, separators=(',', ':'))}\n\n"


def encode_frame(frame: StreamFrame) -> str:
    if isinstance(frame, TextFragment):
        return _sse_format({"text": frame.text})
    if isinstance(frame, ErrorFrame):
        return _sse_format({"error": frame.message})
    if isinstance(frame, Done):
        return f"{DATA_PREFIX}{DONE_SENTINEL}\n\n"
    raise TypeError(f"not a stream frame: {frame!r}")


def decode_payload(payload: str) -> Optional[StreamFrame]:
    """Decode the part of a ``data:`` line after the prefix.

    Returns ``None`` for anything that is not a recognisable frame; callers
    skip such lines and keep reading.
    """
    if payload == DONE_SENTINEL:
        return Done()
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("sse_payload_unparseable", payload=payload[:200])
        return None
    if not isinstance(data, dict):
        return None
    if "error" in data:
        error = data["error"]
        # Some gateways nest the message: {"error": {"message": ...}}
        if isinstance(error, dict):
            error = error.get("message") or json.dumps(error)
        return ErrorFrame(message=str(error))
    text = data.get("text")
    if isinstance(text, str):
        return TextFragment(text=text)
    return None


class SSEDecoder:
    """Incremental decoder for a ``text/event-stream`` body.

    Bytes are decoded with an incremental UTF-8 decoder and any trailing
    partial line is held back until the rest of it arrives, so frames split
    across reads (even inside a multi-byte character) decode intact.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: Union[bytes, str]) -> List[StreamFrame]:
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return list(self._decode_lines(lines))

    def flush(self) -> List[StreamFrame]:
        """Decode whatever is left once the byte stream has ended."""
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        return list(self._decode_lines(tail.split("\n")))

    def _decode_lines(self, lines: List[str]) -> Iterator[StreamFrame]:
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith(DATA_PREFIX):
                continue
            frame = decode_payload(line[len(DATA_PREFIX):])
            if frame is not None:
                yield frame
