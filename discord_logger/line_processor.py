import logging

from discord_logger.docker_monitoring.demux import LogRecord
from discord_logger.notification_formatter import OutboundMessage, format_log_line


class LogProcessor:
    """
    Turns the LogRecords of one container into OutboundMessages and hands them to the dispatcher.
    Records are processed in the order they were demultiplexed.
    """

    def __init__(self, logger: logging.Logger, unit_name: str, dispatcher):
        self.logger = logger
        self.unit_name = unit_name
        self.dispatcher = dispatcher
        self.line_count = 0

    def process_record(self, record: LogRecord) -> OutboundMessage | None:
        message = record.text.strip()
        if not message:
            return None
        outbound = format_log_line(self.unit_name, message)
        self.line_count += 1
        self.logger.debug(f"{self.unit_name} [{record.stream.value}] ({outbound.urgency.value}): {message}")
        self.dispatcher.submit(outbound)
        return outbound
