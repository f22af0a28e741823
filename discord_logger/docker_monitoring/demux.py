"""
Demultiplexing of Docker log streams.

Containers without a TTY deliver stdout and stderr interleaved on one stream.
Each frame has an 8-byte header:
  - byte 0: stream type (0 = stdin, 1 = stdout, 2 = stderr)
  - bytes 1-3: padding (zero)
  - bytes 4-7: payload length (big-endian uint32)

Chunks handed to us by the HTTP layer do not respect frame boundaries, so a
StreamDemultiplexer keeps the unparsed tail of the stream between calls to feed().
"""
import logging
import struct
from dataclasses import dataclass

from discord_logger.constants import (
    HEADER_FORMAT,
    HEADER_SIZE,
    MAP_STREAM_BYTE_TO_TYPE,
    MAX_FRAME_SIZE,
    StreamType,
)

logger = logging.getLogger(__name__)


class MalformedStreamError(Exception):
    """
    Raised when a frame header can not be trusted.

    frame_size is the number of bytes the broken frame occupies (header included)
    when the length field is still usable, None when the stream has to be resynced.
    """
    def __init__(self, message: str, frame_size: int | None = None):
        super().__init__(message)
        self.frame_size = frame_size


@dataclass(frozen=True)
class LogRecord:
    stream: StreamType
    payload: bytes

    @property
    def text(self) -> str:
        return self.payload.decode("utf-8", errors="replace")


def parse_header(header: bytes) -> tuple[StreamType, int]:
    """
    Parse an 8-byte frame header.

    Returns:
        Tuple of (stream_type, payload_length).
    """
    if len(header) != HEADER_SIZE:
        raise MalformedStreamError(f"Frame header must be {HEADER_SIZE} bytes, got {len(header)}")
    stream_byte, padding, payload_length = struct.unpack(HEADER_FORMAT, header)
    if padding != b"\x00\x00\x00":
        raise MalformedStreamError(f"Invalid padding in frame header: {header!r}")
    if payload_length > MAX_FRAME_SIZE:
        raise MalformedStreamError(f"Frame length {payload_length} exceeds maximum of {MAX_FRAME_SIZE} bytes")
    stream_type = MAP_STREAM_BYTE_TO_TYPE.get(stream_byte)
    if stream_type is None:
        raise MalformedStreamError(
            f"Invalid stream type {stream_byte} in frame header",
            frame_size=HEADER_SIZE + payload_length,
        )
    return stream_type, payload_length


class StreamDemultiplexer:
    """
    Turns raw chunks of one container's log stream into LogRecords.

    One instance belongs to exactly one WatchSession. In raw mode (TTY containers)
    every chunk is passed through as a stdout record.
    """

    def __init__(self, unit_name: str = "", raw: bool = False):
        self.unit_name = unit_name
        self.raw = raw
        self._buffer = bytearray()
        self._skip = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of buffered bytes that do not form a complete frame yet."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[LogRecord]:
        if self._closed or not chunk:
            return []
        if self.raw:
            return [LogRecord(StreamType.STDOUT, bytes(chunk))]

        self._buffer += chunk
        records = []
        while True:
            if self._skip:
                dropped = min(self._skip, len(self._buffer))
                del self._buffer[:dropped]
                self._skip -= dropped
                if self._skip:
                    break
            if len(self._buffer) < HEADER_SIZE:
                break
            try:
                stream_type, payload_length = parse_header(bytes(self._buffer[:HEADER_SIZE]))
            except MalformedStreamError as e:
                if e.frame_size is None:
                    logger.warning(f"{self.unit_name}: {e}. Discarding {len(self._buffer)} buffered bytes.")
                    self._buffer.clear()
                    break
                logger.warning(f"{self.unit_name}: {e}. Dropping frame of {e.frame_size} bytes.")
                self._skip = e.frame_size
                continue
            frame_end = HEADER_SIZE + payload_length
            if len(self._buffer) < frame_end:
                break
            payload = bytes(self._buffer[HEADER_SIZE:frame_end])
            del self._buffer[:frame_end]
            if payload:
                records.append(LogRecord(stream_type, payload))
        return records

    def close(self) -> int:
        """Stop accepting data. Returns the number of discarded bytes of an incomplete frame."""
        discarded = len(self._buffer)
        if discarded:
            logger.debug(f"{self.unit_name}: Stream closed with {discarded} bytes of an incomplete frame.")
        self._buffer.clear()
        self._skip = 0
        self._closed = True
        return discarded
