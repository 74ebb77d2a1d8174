"""
Telegram delivery: posts HTML notifications to one admin chat via the Bot API.

Delivery is best-effort; callers log DeliveryError and move on.
"""

from __future__ import annotations

import httpx

from solwatch.analysis_engine.formatting import shorten_address
from solwatch.core.exceptions import DeliveryError
from solwatch.solwatch_logging import get_logger

logger = get_logger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
TELEGRAM_TIMEOUT_SEC = 20.0


def format_activity_message(address: str, summary: str) -> str:
    return f"🚨 <b>Activity on {shorten_address(address)}</b>\n\n{summary}"


class TelegramNotifier:
    def __init__(
        self,
        bot_token: str,
        chat_id: int,
        *,
        client: httpx.AsyncClient | None = None,
        api_base: str = TELEGRAM_API_BASE,
    ) -> None:
        self._chat_id = int(chat_id)
        self._url = f"{api_base}/bot{bot_token.strip()}/sendMessage"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=TELEGRAM_TIMEOUT_SEC)

    async def send_html(self, text: str, *, silent: bool = False) -> None:
        """Raises DeliveryError on transport failure, non-2xx, or ok=false."""
        try:
            resp = await self._client.post(
                self._url,
                json={
                    "chat_id": self._chat_id,
                    "text": text,
                    "parse_mode": "HTML",
                    "disable_notification": bool(silent),
                    "disable_web_page_preview": True,
                },
            )
        except httpx.HTTPError as e:
            # str(e) can embed the request URL, which carries the bot token
            raise DeliveryError(f"telegram request failed: {type(e).__name__}") from e
        if not resp.is_success:
            raise DeliveryError(f"telegram returned status {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise DeliveryError("telegram returned a malformed body") from e
        if not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else None
            raise DeliveryError(f"telegram rejected message: {description or data}")

    async def notify(self, address: str, summary: str) -> None:
        """Deliver one activity summary for a watched address."""
        await self.send_html(format_activity_message(address, summary))
        logger.info("notification_delivered", address=shorten_address(address))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
