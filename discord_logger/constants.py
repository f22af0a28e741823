from enum import Enum

OPT_IN_LABEL = "discord-logger.enabled"

# Docker multiplexed log frames: 1 byte stream type, 3 bytes padding, 4 bytes big-endian payload length
HEADER_SIZE = 8
HEADER_FORMAT = ">B3sI"
MAX_FRAME_SIZE = 10 * 1024 * 1024  # 10MB

DISCORD_MAX_LENGTH = 2000
ERROR_MARKER = "error"

START_MESSAGE = "Started docker discord logger."
SHUTDOWN_MESSAGE = "Stopped docker discord logger."


class StreamType(Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


# stdin frames only show up for attached containers, treat them like stdout
MAP_STREAM_BYTE_TO_TYPE = {
    0: StreamType.STDOUT,
    1: StreamType.STDOUT,
    2: StreamType.STDERR,
}


class Urgency(Enum):
    NORMAL = "normal"
    FLAGGED = "flagged"
