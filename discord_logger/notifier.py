import time
import logging
import traceback
from concurrent.futures import Future, ThreadPoolExecutor

import apprise
import requests

from discord_logger.config.config_model import GlobalConfig
from discord_logger.constants import DISCORD_MAX_LENGTH
from discord_logger.notification_formatter import OutboundMessage, SHORTENED_PREFIX

logger = logging.getLogger(__name__)
logging.getLogger("apprise").setLevel(logging.WARNING)

MAX_RATE_LIMIT_RETRIES = 3


class DeliveryError(Exception):
    """Raised when a notification could not be delivered"""
    pass


class SinkValidationError(Exception):
    """Raised at startup when the notification endpoint is invalid or unreachable"""
    pass


def truncate_for_discord(message: str) -> str:
    if len(message) <= DISCORD_MAX_LENGTH:
        return message
    return SHORTENED_PREFIX + message[:DISCORD_MAX_LENGTH - len(SHORTENED_PREFIX)]


def _retry_after(response) -> float:
    try:
        return float(response.json().get("retry_after", 1))
    except (ValueError, AttributeError):
        return float(response.headers.get("Retry-After", 1) or 1)


def send_discord_message(url: str, message: str, timeout: float = 10):
    """
    Post a message to a Discord webhook.
    Rate limited requests (429) are retried after the delay Discord asks for.
    """
    payload = {"content": truncate_for_discord(message)}
    for attempt in range(1, MAX_RATE_LIMIT_RETRIES + 1):
        try:
            response = requests.post(url, json=payload, timeout=timeout)
        except requests.RequestException as e:
            raise DeliveryError(f"Error while trying to connect to Discord: {e}") from e
        if response.status_code == 429 and attempt < MAX_RATE_LIMIT_RETRIES:
            delay = _retry_after(response)
            logger.debug(f"Discord rate limit hit, retrying in {delay}s (attempt {attempt})")
            time.sleep(delay)
            continue
        if 200 <= response.status_code < 300:
            return
        raise DeliveryError(f"Error while trying to send Discord message ({response.status_code}): {response.text}")


def send_apprise_notification(url: str, message: str):
    """
    Send a notification using Apprise.
    """
    apobj = apprise.Apprise()
    if not apobj.add(url):
        raise DeliveryError("Apprise could not parse the configured url")
    try:
        result = apobj.notify(body=message)
    except Exception as e:
        raise DeliveryError(f"Error while trying to send apprise-notification: {e}") from e
    if not result:
        raise DeliveryError("Error trying to send apprise-notification")


class Notifier:
    """
    Notification sink. Sends plain text to every configured endpoint (Discord webhook and/or Apprise).
    """

    def __init__(self, discord_url: str | None = None, apprise_url: str | None = None):
        self.discord_url = discord_url
        self.apprise_url = apprise_url

    @classmethod
    def from_config(cls, config: GlobalConfig) -> "Notifier":
        nc = config.notifications
        return cls(
            discord_url=nc.discord.webhook_url.get_secret_value() if nc.discord else None,
            apprise_url=nc.apprise.url.get_secret_value() if nc.apprise else None,
        )

    def validate(self, timeout: float = 10):
        """Check that the configured endpoints are usable. Raises SinkValidationError."""
        if not self.discord_url and not self.apprise_url:
            raise SinkValidationError("No notification endpoint configured")
        if self.discord_url:
            try:
                # Discord answers GET on a webhook url with the webhook object if the token is valid
                response = requests.get(self.discord_url, timeout=timeout)
            except requests.RequestException as e:
                raise SinkValidationError(f"Provided webhook url is invalid: {e}") from e
            if not 200 <= response.status_code < 300:
                raise SinkValidationError(f"Provided webhook url is invalid: {response.status_code} {response.text}")
        if self.apprise_url:
            if not apprise.Apprise().add(self.apprise_url):
                raise SinkValidationError("Provided apprise url is invalid")

    def send(self, message: str):
        """Deliver to all endpoints. Raises DeliveryError after trying all of them if any failed."""
        errors = []
        if self.discord_url:
            try:
                send_discord_message(self.discord_url, message)
            except DeliveryError as e:
                errors.append(str(e))
        if self.apprise_url:
            try:
                send_apprise_notification(self.apprise_url, message)
            except DeliveryError as e:
                errors.append(str(e))
        if errors:
            raise DeliveryError("; ".join(errors))


class NotificationDispatcher:
    """
    Fire-and-forget delivery of OutboundMessages.

    submit() returns immediately; messages are sent from a small thread pool.
    Failures are logged and never reach the caller.
    """

    def __init__(self, notifier: Notifier, max_workers: int = 4):
        self.notifier = notifier
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def submit(self, message: OutboundMessage) -> Future | None:
        try:
            future = self._executor.submit(self.notifier.send, message.text)
        except RuntimeError:
            logger.debug(f"Dispatcher is shut down, dropping notification: {message.text[:80]}")
            return None
        future.add_done_callback(self._log_result)
        return future

    @staticmethod
    def _log_result(future: Future):
        if future.cancelled():
            return
        error = future.exception()
        if error is None:
            logger.debug("Notification sent successfully")
        elif isinstance(error, DeliveryError):
            logger.error(f"Could not deliver notification: {error}")
        else:
            logger.error(f"Unexpected error while sending notification: {error}")
            logger.debug("".join(traceback.format_exception(type(error), error, error.__traceback__)))

    def shutdown(self, wait: bool = True, cancel_pending: bool = False):
        self._executor.shutdown(wait=wait, cancel_futures=cancel_pending)
