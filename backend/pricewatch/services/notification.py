"""
Outbound alert delivery.

Every channel implements Notifier.send(message) -> bool. Delivery problems are
logged and reported as False; they never raise into the sweep.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from requests.exceptions import RequestException
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.rest import Client

from pricewatch.config import Settings, get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class Notifier(ABC):
    name: str = "base"

    @abstractmethod
    async def send(self, message: str) -> bool:
        pass

    async def close(self):
        pass

    async def send_test_notification(self) -> bool:
        """Send a test message to verify the channel end to end."""
        return await self.send(
            "🧪 Test Fare Price Tracker\n\nYour alert system is working! ✅"
        )


class LogNotifier(Notifier):
    """Fallback when no channel is configured: the alert only reaches the log."""
    name = "log"

    async def send(self, message: str) -> bool:
        logger.info(f"Notification (not delivered, no channel configured):\n{message}")
        return False


class NtfyNotifier(Notifier):
    """
    Push notifications through an ntfy server.

    The message text is posted as the body of a request to <ntfy_url>/<topic>.
    """
    name = "ntfy"

    # Priority mapping to ntfy priorities (1=min, 5=max)
    PRIORITY_MAP = {
        "min": "1",
        "low": "2",
        "default": "3",
        "high": "4",
        "urgent": "5",
    }

    def __init__(
        self,
        ntfy_url: Optional[str] = None,
        ntfy_topic: Optional[str] = None,
        title: str = "✈️ Fare alert",
        priority: str = "high",
    ):
        self.ntfy_url = ntfy_url or settings.ntfy_url
        self.ntfy_topic = ntfy_topic or settings.ntfy_topic
        self.title = title
        self.priority = priority
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=10.0)
        return self._http_client

    async def close(self):
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def send(self, message: str) -> bool:
        try:
            client = await self._get_client()
            url = f"{self.ntfy_url}/{self.ntfy_topic}"

            headers = {
                "Title": self.title,
                "Priority": self.PRIORITY_MAP.get(self.priority, "3"),
                "Tags": "airplane",
                "Click": settings.base_url,
            }

            response = await client.post(url, content=message.encode("utf-8"), headers=headers)

            if response.status_code == 200:
                logger.info(f"Notification sent to ntfy topic {self.ntfy_topic}")
                return True
            logger.error(f"ntfy returned {response.status_code}: {response.text}")
            return False

        except httpx.ConnectError as e:
            logger.warning(f"Could not connect to ntfy server at {self.ntfy_url}: {e}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Failed to send notification: {e}")
            return False
        except httpx.InvalidURL as e:
            logger.error(f"Invalid ntfy URL {self.ntfy_url}: {e}")
            return False

    def get_notification_url(self) -> str:
        """Get ntfy subscription URL."""
        return f"{self.ntfy_url}/{self.ntfy_topic}"


class TwilioSmsNotifier(Notifier):
    """SMS through Twilio. The SDK is blocking, so sends run in a worker thread."""
    name = "sms"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        to_number: str,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.to_number = to_number
        self._client: Optional[Client] = None

    def is_configured(self) -> bool:
        return all([self.account_sid, self.auth_token, self.from_number, self.to_number])

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    async def send(self, message: str) -> bool:
        if not self.is_configured():
            logger.warning("Twilio is not configured, SMS not sent")
            return False

        try:
            client = self._get_client()
            sms = await asyncio.to_thread(
                client.messages.create,
                body=message,
                from_=self.from_number,
                to=self.to_number,
            )
            logger.info(f"SMS sent: {sms.sid}")
            return True

        except TwilioRestException as e:
            logger.error(f"Twilio returned {e.status}: {e.msg}")
            return False
        except TwilioException as e:
            logger.error(f"Failed to send SMS: {e}")
            return False
        except RequestException as e:
            logger.error(f"Could not reach Twilio: {e}")
            return False


def build_notifier(config: Optional[Settings] = None) -> Notifier:
    """Create the notifier for the configured channel."""
    config = config or settings
    channel = (config.notification_channel or "").lower()

    if channel == "ntfy":
        return NtfyNotifier(ntfy_url=config.ntfy_url, ntfy_topic=config.ntfy_topic)

    if channel == "sms":
        sms = TwilioSmsNotifier(
            account_sid=config.twilio_account_sid,
            auth_token=config.twilio_auth_token,
            from_number=config.twilio_from_number,
            to_number=config.alert_phone_number,
        )
        if sms.is_configured():
            return sms
        logger.warning("⚠️  Twilio not configured, alerts will only be logged")
        return LogNotifier()

    if channel != "log":
        logger.warning(f"Unknown notification channel '{channel}', alerts will only be logged")
    return LogNotifier()


# Global notifier instance
_global_notifier: Optional[Notifier] = None


def get_global_notifier() -> Notifier:
    global _global_notifier
    if _global_notifier is None:
        _global_notifier = build_notifier()
    return _global_notifier


async def shutdown_notifier():
    """Close the global notifier's HTTP client."""
    global _global_notifier
    if _global_notifier is not None:
        await _global_notifier.close()
        _global_notifier = None
