from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from .formatting import finding_log_line, format_finding_message
from .types import Finding

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 2.0


class LogPublisher:
    """Publishes findings to the log only."""

    async def publish(self, finding: Finding, tx_url: str | None = None) -> None:
        logger.warning("Finding %s", finding_log_line(finding))

    async def close(self) -> None:
        return None


def _retry_after(response: httpx.Response) -> float:
    try:
        parameters = response.json().get("parameters") or {}
        return float(parameters.get("retry_after", DEFAULT_RETRY_AFTER_SECONDS))
    except (ValueError, TypeError, AttributeError):
        return DEFAULT_RETRY_AFTER_SECONDS


class TelegramNotifier:
    """
    Sends one HTML message per finding.

    A 429 waits for Telegram's retry_after, other failures back off
    exponentially. Both count against the same attempt budget; the last
    failure is raised so the caller can count the alert as failed.
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        timeout: float = 15.0,
        retries: int = 4,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.chat_id = chat_id
        self.retries = retries
        self._url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    def _payload(self, finding: Finding, tx_url: str | None) -> dict[str, Any]:
        return {
            "chat_id": self.chat_id,
            "text": format_finding_message(finding, tx_url),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }

    async def publish(self, finding: Finding, tx_url: str | None = None) -> None:
        payload = self._payload(finding, tx_url)
        delay = 1.0

        for attempt in range(1, self.retries + 1):
            try:
                response = await self._client.post(self._url, json=payload)
                if response.status_code == 429:
                    wait = _retry_after(response)
                    if attempt == self.retries:
                        raise RuntimeError(f"Telegram rate limited sending {finding.alert_id}")
                    logger.warning("Telegram rate limited on %s. Sleeping %.1fs", finding.alert_id, wait)
                    await asyncio.sleep(wait)
                    continue

                response.raise_for_status()
                data = response.json()
                if not data.get("ok", False):
                    raise RuntimeError(f"Telegram rejected {finding.alert_id}: {data}")
                logger.info("Sent finding %s", finding_log_line(finding))
                return
            except (httpx.HTTPError, ValueError, RuntimeError) as exc:
                if attempt == self.retries:
                    raise
                logger.warning("Telegram send of %s attempt %d failed: %s", finding.alert_id, attempt, exc)
                await asyncio.sleep(delay)
                delay *= 2
