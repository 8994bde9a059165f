"""
Webhook notifier for new alerts.
"""

import logging
from typing import Optional

import httpx

from fleetdock import __version__
from fleetdock.alerts.models import Alert, WebhookPayload

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_SOURCE = "fleetdock"


class WebhookNotifier:
    """
    Posts a JSON envelope for every new alert.

    Failures are logged and reported through the return value; they are
    never raised into the monitor.

    Usage:
        notifier = WebhookNotifier("https://hooks.example.com/alerts")
        await notifier.send(alert)
        await notifier.close()
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout: float = DEFAULT_TIMEOUT,
        source: str = DEFAULT_SOURCE,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize webhook notifier.

        Args:
            webhook_url: Endpoint URL; an empty value disables sending
            timeout: Request timeout in seconds
            source: Value of the envelope's ``source`` field
            client: Pre-configured httpx client (optional)
        """
        self.webhook_url = webhook_url or ""
        self.timeout = timeout
        self.source = source

        if client:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True

        if self.is_enabled():
            logger.info(f"WebhookNotifier configured: {self.webhook_url}")

    def is_enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send(self, alert: Alert) -> bool:
        """
        Send one alert.

        Args:
            alert: Alert to post

        Returns:
            True if the webhook accepted it (status < 400), False otherwise
        """
        if not self.is_enabled():
            return True

        payload = WebhookPayload(alert=alert, source=self.source)
        headers = {
            "Content-Type": "application/json",
            "User-Agent": f"fleetdock/{__version__}",
        }

        try:
            response = await self.client.post(
                self.webhook_url,
                json=payload.model_dump(mode="json", exclude_none=True),
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to send webhook for alert {alert.id}: {e}")
            return False

        if response.status_code >= 400:
            logger.error(f"Webhook returned error status {response.status_code} for alert {alert.id}")
            return False

        logger.debug(f"Sent webhook for alert {alert.id} ({alert.type.value})")
        return True

    async def close(self):
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self.client.aclose()
