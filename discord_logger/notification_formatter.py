import logging
from dataclasses import dataclass

from discord_logger.constants import DISCORD_MAX_LENGTH, ERROR_MARKER, Urgency

logger = logging.getLogger(__name__)

SHORTENED_PREFIX = "This message had to be shortened: \n"
# room for the markup around a log line
MAX_LINE_LENGTH = DISCORD_MAX_LENGTH - 100

ANSI_RED = "\u001b[2;31m"
ANSI_RESET = "\u001b[0m"


@dataclass(frozen=True)
class OutboundMessage:
    text: str
    urgency: Urgency = Urgency.NORMAL

    @property
    def flagged(self) -> bool:
        return self.urgency == Urgency.FLAGGED


def shorten(message: str, limit: int = MAX_LINE_LENGTH) -> str:
    if len(message) <= limit:
        return message
    return SHORTENED_PREFIX + message[:limit - len(SHORTENED_PREFIX)]


def classify(message: str) -> Urgency:
    # Plain substring match, case-sensitive on purpose
    return Urgency.FLAGGED if ERROR_MARKER in message else Urgency.NORMAL


def format_log_line(container_name: str, message: str) -> OutboundMessage:
    """
    Format one trimmed log line.
    Lines containing 'error' are wrapped in a red ansi code block, everything else is a plain line.
    """
    urgency = classify(message)
    message = shorten(message)
    if urgency == Urgency.FLAGGED:
        message = message.replace("```", "'''")
        return OutboundMessage(f"```ansi\n[{container_name}] {ANSI_RED}{message}{ANSI_RESET}\n```", urgency)
    return OutboundMessage(f"**[{container_name}]** {message}", urgency)


def format_started(container_name: str) -> OutboundMessage:
    return OutboundMessage(f'Container **"{container_name}"** started.')


def format_exited(container_name: str) -> OutboundMessage:
    return OutboundMessage(f'Container **"{container_name}"** exited.')
