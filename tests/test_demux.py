"""Tests for the multiplexed log stream demultiplexer."""

import struct

import pytest

from conftest import frame
from discord_logger.constants import HEADER_SIZE, MAX_FRAME_SIZE, StreamType
from discord_logger.docker_monitoring.demux import (
    LogRecord,
    MalformedStreamError,
    StreamDemultiplexer,
    parse_header,
)


STREAM = frame(1, b"server listening on port 8080\n") + frame(2, b"request failed: error connecting\n") + frame(1, b"done\n")


def feed_all(chunks, raw=False):
    demuxer = StreamDemultiplexer("web", raw=raw)
    records = []
    for chunk in chunks:
        records.extend(demuxer.feed(chunk))
    return records


class TestParseHeader:
    def test_stdout_header(self):
        assert parse_header(struct.pack(">BxxxI", 1, 42)) == (StreamType.STDOUT, 42)

    def test_stderr_header(self):
        assert parse_header(struct.pack(">BxxxI", 2, 5)) == (StreamType.STDERR, 5)

    def test_stdin_is_treated_as_stdout(self):
        assert parse_header(struct.pack(">BxxxI", 0, 5)) == (StreamType.STDOUT, 5)

    def test_invalid_stream_type_keeps_frame_size(self):
        with pytest.raises(MalformedStreamError) as exc_info:
            parse_header(struct.pack(">BxxxI", 9, 10))
        assert exc_info.value.frame_size == HEADER_SIZE + 10

    def test_non_zero_padding_requires_resync(self):
        with pytest.raises(MalformedStreamError) as exc_info:
            parse_header(b"\x01\x00\x07\x00\x00\x00\x00\x05")
        assert exc_info.value.frame_size is None

    def test_overflow_length(self):
        with pytest.raises(MalformedStreamError) as exc_info:
            parse_header(struct.pack(">BxxxI", 1, MAX_FRAME_SIZE + 1))
        assert exc_info.value.frame_size is None

    def test_short_header(self):
        with pytest.raises(MalformedStreamError):
            parse_header(b"\x01\x00\x00")


class TestStreamDemultiplexer:
    def test_single_frame(self):
        records = feed_all([frame(1, b"hello\n")])
        assert records == [LogRecord(StreamType.STDOUT, b"hello\n")]
        assert records[0].text == "hello\n"

    def test_multiple_frames_in_one_chunk(self):
        records = feed_all([STREAM])
        assert [r.stream for r in records] == [StreamType.STDOUT, StreamType.STDERR, StreamType.STDOUT]
        assert records[1].text == "request failed: error connecting\n"

    def test_split_at_every_offset_yields_same_records(self):
        expected = feed_all([STREAM])
        for offset in range(1, len(STREAM)):
            assert feed_all([STREAM[:offset], STREAM[offset:]]) == expected, offset

    def test_byte_by_byte_delivery(self):
        chunks = [STREAM[i:i + 1] for i in range(len(STREAM))]
        assert feed_all(chunks) == feed_all([STREAM])

    def test_partial_frame_is_buffered(self):
        demuxer = StreamDemultiplexer("web")
        data = frame(1, b"hello\n")
        assert demuxer.feed(data[:HEADER_SIZE + 2]) == []
        assert demuxer.pending == HEADER_SIZE + 2
        assert demuxer.feed(data[HEADER_SIZE + 2:]) == [LogRecord(StreamType.STDOUT, b"hello\n")]
        assert demuxer.pending == 0

    def test_empty_frame_is_skipped(self):
        assert feed_all([frame(1, b"") + frame(1, b"x")]) == [LogRecord(StreamType.STDOUT, b"x")]

    def test_invalid_stream_type_drops_only_that_frame(self, caplog):
        bad = struct.pack(">BxxxI", 7, 4) + b"junk"
        records = feed_all([frame(1, b"before") + bad + frame(2, b"after")])
        assert records == [LogRecord(StreamType.STDOUT, b"before"), LogRecord(StreamType.STDERR, b"after")]
        assert "Dropping frame" in caplog.text

    def test_invalid_frame_split_across_chunks_is_dropped(self):
        bad = struct.pack(">BxxxI", 7, 6) + b"broken"
        data = bad + frame(1, b"ok")
        assert feed_all([data[:10], data[10:]]) == [LogRecord(StreamType.STDOUT, b"ok")]

    def test_overflow_discards_buffer_and_recovers(self):
        demuxer = StreamDemultiplexer("web")
        assert demuxer.feed(struct.pack(">BxxxI", 1, MAX_FRAME_SIZE + 1) + b"garbage") == []
        assert demuxer.pending == 0
        assert demuxer.feed(frame(1, b"next")) == [LogRecord(StreamType.STDOUT, b"next")]

    def test_feed_after_close_yields_nothing(self):
        demuxer = StreamDemultiplexer("web")
        demuxer.feed(frame(1, b"abc")[:5])
        assert demuxer.close() == 5
        assert demuxer.closed
        assert demuxer.feed(frame(1, b"late")) == []

    def test_raw_mode_passes_chunks_through(self):
        records = feed_all([b"tty output\r\n", b"more"], raw=True)
        assert records == [
            LogRecord(StreamType.STDOUT, b"tty output\r\n"),
            LogRecord(StreamType.STDOUT, b"more"),
        ]

    def test_invalid_utf8_is_replaced(self):
        record = feed_all([frame(1, b"caf\xe9")])[0]
        assert record.text == "caf\ufffd"
