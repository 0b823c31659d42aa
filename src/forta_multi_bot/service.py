from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .abi import AbiRegistry
from .block_stream import BlockStream
from .bots.base import BotContext
from .config import Settings, load_bot_config
from .events import BlockEvent, block_from_rpc, transaction_event_from_rpc
from .formatting import build_tx_link
from .orchestrator import BotOrchestrator
from .provider import ChainProvider
from .telegram_notifier import LogPublisher, TelegramNotifier
from .types import Finding

logger = logging.getLogger(__name__)


@dataclass
class Metrics:
    blocks_seen: int = 0
    blocks_failed: int = 0
    transactions_seen: int = 0
    findings: int = 0
    alerts_sent: int = 0
    alerts_failed: int = 0


class MonitorService:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.metrics = Metrics()
        self.provider = ChainProvider(settings.json_rpc_url, timeout=settings.rpc_timeout_seconds)
        self.stream = BlockStream(settings.ws_rpc_url)
        self.orchestrator = BotOrchestrator(
            load_bot_config(settings.bot_config_path),
            BotContext(provider=self.provider, abis=AbiRegistry(settings.abi_dir)),
        )
        if settings.telegram_bot_token and settings.telegram_chat_id:
            self.publisher = TelegramNotifier(settings.telegram_bot_token, settings.telegram_chat_id)
        else:
            self.publisher = LogPublisher()

    async def run(self) -> None:
        await self.orchestrator.initialize()
        health_task = asyncio.create_task(self._health_loop())
        try:
            async for block_number in self.stream.blocks():
                await self._handle_block_number(block_number)
        finally:
            health_task.cancel()
            await asyncio.gather(health_task, return_exceptions=True)
            await self.publisher.close()
            await self.provider.close()

    async def _handle_block_number(self, block_number: int) -> None:
        self.metrics.blocks_seen += 1
        try:
            payload = await self.provider.get_block(block_number, full_transactions=True)
        except Exception as exc:
            self.metrics.blocks_failed += 1
            logger.warning("Could not fetch block %d: %s", block_number, exc)
            return

        block = block_from_rpc(payload)
        await self._publish(await self.orchestrator.handle_block(BlockEvent(block)), None)
        traces = await self._fetch_traces(block_number)

        for tx in payload.get("transactions", []):
            if not isinstance(tx, dict):
                continue
            self.metrics.transactions_seen += 1
            try:
                receipt = await self.provider.get_transaction_receipt(tx["hash"])
            except Exception as exc:
                logger.warning("Could not fetch receipt for %s: %s", tx.get("hash"), exc)
                receipt = None
            event = transaction_event_from_rpc(tx, block, receipt, traces.get(str(tx["hash"]).lower(), ()))
            findings = await self.orchestrator.handle_transaction(event)
            await self._publish(findings, event.hash)

    async def _fetch_traces(self, block_number: int) -> dict[str, list[dict]]:
        try:
            return await self.provider.get_traces(block_number)
        except Exception as exc:
            logger.warning("Could not fetch traces for block %d, continuing without: %s", block_number, exc)
            return {}

    async def _publish(self, findings: list[Finding], tx_hash: str | None) -> None:
        tx_url = build_tx_link(self.settings.explorer_base_url, tx_hash)
        for finding in findings:
            self.metrics.findings += 1
            try:
                await self.publisher.publish(finding, tx_url)
                self.metrics.alerts_sent += 1
            except Exception as exc:
                self.metrics.alerts_failed += 1
                logger.exception("Failed to publish finding %s: %s", finding.alert_id, exc)

    async def _health_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.health_log_interval_seconds)
            logger.info(
                (
                    "health blocks_seen=%d blocks_failed=%d transactions_seen=%d "
                    "findings=%d alerts_sent=%d alerts_failed=%d"
                ),
                self.metrics.blocks_seen,
                self.metrics.blocks_failed,
                self.metrics.transactions_seen,
                self.metrics.findings,
                self.metrics.alerts_sent,
                self.metrics.alerts_failed,
            )
